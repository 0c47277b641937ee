from typing import Any, Dict

from capc.failuredomains.capacity.interface import (  # noqa: F401
    CapacitySourceError,
    CapacitySourceInterface,
    PublicIpAddress,
)


def new_capacity_source(endpoint: Dict[str, Any], config: Dict) -> CapacitySourceInterface:
    if config.get("_mock_capacity"):
        ret = config["_mock_capacity"]
        assert isinstance(ret, CapacitySourceInterface), "unsupported _mock_capacity"
        return ret

    from capc.failuredomains.capacity.cloudstack import CloudStackClient

    return CloudStackClient.from_config(endpoint)
