# test: ignore
import os
import sys
from subprocess import check_call
from typing import List

from setuptools import Command, find_namespace_packages, setup

__version__ = "0.1.0"


class Formatter(Command):
    user_options: List[str] = []

    def initialize_options(self) -> None:
        pass

    def finalize_options(self) -> None:
        pass

    def run(self) -> None:
        check_call(
            ["black", "src", "test"], cwd=os.path.dirname(os.path.abspath(__file__)),
        )
        check_call(
            ["isort", "src", "test"], cwd=os.path.dirname(os.path.abspath(__file__)),
        )
        run_type_checking()


def run_type_checking() -> None:
    check_call(
        ["mypy", os.path.join(os.path.dirname(os.path.abspath(__file__)), "src")]
    )
    check_call(
        ["mypy", os.path.join(os.path.dirname(os.path.abspath(__file__)), "test")]
    )

    check_call(["flake8", "--ignore=F405,E501,W503,E203", "src", "test", "setup.py"])


class PyTest(Command):
    user_options: List[str] = []

    def initialize_options(self) -> None:
        pass

    def finalize_options(self) -> None:
        pass

    def run(self) -> None:
        cwd = os.path.dirname(os.path.abspath(__file__))
        xml_out = os.path.join(cwd, "build", "test-results", "pytest.xml")
        if not os.path.exists(os.path.dirname(xml_out)):
            os.makedirs(os.path.dirname(xml_out))

        env = dict(os.environ)
        env["FDBALANCER_RUNTIME_CHECKS"] = "true"
        # -s is needed so py.test doesn't mess with stdin/stdout
        check_call(
            [sys.executable, "-m", "pytest", "-s", "test", "--junitxml=%s" % xml_out],
            cwd=cwd,
            env=env,
        )


class TypeChecking(Command):
    user_options: List[str] = []

    def initialize_options(self) -> None:
        pass

    def finalize_options(self) -> None:
        pass

    def run(self) -> None:
        run_type_checking()


setup(
    name="capc-failuredomains",
    version=__version__,
    packages=find_namespace_packages(where="src", include=["capc.*"]),
    package_dir={"": "src"},
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "requests >= 2.24.0",
        "urllib3",
        "certifi",
        "typing_extensions",
        "immutabledict >= 2.0.0",
        "jsonpickle",
        "argcomplete",
        "typeguard",
    ],
    extras_require={"test": ["pytest", "hypothesis"]},
    cmdclass={"test": PyTest, "format": Formatter, "types": TypeChecking},
    entry_points={
        "console_scripts": ["fdbalancer=capc.failuredomains.cli:console_main"]
    },
    maintainer="CloudStack cluster API provider",
)
