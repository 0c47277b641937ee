"""
    This module is to be used for two purposes.
    1) As a shorthand for importing types.
        These types are only imported if typing.TYPE_CHECKING is true, so this should be imported like

        import typing
        if typing.TYPE_CHECKING:
            from capc.failuredomains import fdtypes  # noqa

        This prevents overimporting of unused types etc.

    2) To define new types (used for type checking _only_) that are used throughout the code.
"""
# pylint: disable=invalid-name
import typing

from typing_extensions import Literal

AccountName = typing.NewType("AccountName", str)
ClusterName = typing.NewType("ClusterName", str)
DomainPath = typing.NewType("DomainPath", str)
EndpointName = typing.NewType("EndpointName", str)
FailureDomainName = typing.NewType("FailureDomainName", str)
IpAddress = typing.NewType("IpAddress", str)
MachineName = typing.NewType("MachineName", str)
NetworkId = typing.NewType("NetworkId", str)
NetworkName = typing.NewType("NetworkName", str)
ZoneId = typing.NewType("ZoneId", str)
ZoneName = typing.NewType("ZoneName", str)

NetworkType = Literal["Isolated", "Shared", "L2", ""]
IpAddressState = Literal["Free", "Allocating", "Allocated", "Releasing", "Reserved"]

NETWORK_TYPE_ISOLATED: NetworkType = "Isolated"
NETWORK_TYPE_SHARED: NetworkType = "Shared"

# the only state that counts as an available public address. Case sensitive.
IP_STATE_FREE: IpAddressState = "Free"

Labels = typing.Dict[str, str]
