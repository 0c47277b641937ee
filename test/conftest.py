import os

# read by capc.failuredomains.codeanalysis at import time
os.environ.setdefault("FDBALANCER_RUNTIME_CHECKS", "true")
