import abc
from abc import ABC
from typing import Any, Dict, List, Optional

from capc.failuredomains import fdtypes as ft
from capc.failuredomains.machine import Network


class CapacitySourceError(RuntimeError):
    pass


class PublicIpAddress:
    def __init__(
        self,
        state: str,
        id: str = "",
        ip_address: Optional[ft.IpAddress] = None,
        network_id: Optional[ft.NetworkId] = None,
        zone_name: Optional[ft.ZoneName] = None,
    ) -> None:
        self.state = state
        self.id = id
        self.ip_address = ip_address
        self.network_id = network_id
        self.zone_name = zone_name

    @property
    def is_free(self) -> bool:
        return self.state == ft.IP_STATE_FREE

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PublicIpAddress":
        return PublicIpAddress(
            state=d.get("state", ""),
            id=d.get("id", ""),
            ip_address=d.get("ipaddress"),
            network_id=d.get("networkid") or d.get("associatednetworkid"),
            zone_name=d.get("zonename"),
        )

    def __str__(self) -> str:
        return "PublicIpAddress(ip={}, state={})".format(self.ip_address, self.state)

    def __repr__(self) -> str:
        return str(self)


class CapacitySourceInterface(ABC):
    @abc.abstractmethod
    def resolve_network(self, network: Network) -> None:
        """
        Fills in the id, name and type of the network in place, matching by name
        first and then by id.
        """

    @abc.abstractmethod
    def get_public_ips(self, network: Network) -> List[PublicIpAddress]:
        ...

    @abc.abstractmethod
    def new_client_in_domain_and_account(
        self, domain: ft.DomainPath, account: ft.AccountName
    ) -> "CapacitySourceInterface":
        ...

    def close(self) -> None:
        pass
