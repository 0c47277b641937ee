from typing import Dict, List, Optional, Tuple

import capc.failuredomains.fdlogging as logging
from capc.failuredomains import fdtypes as ft
from capc.failuredomains.capacity.interface import (
    CapacitySourceError,
    CapacitySourceInterface,
    PublicIpAddress,
)
from capc.failuredomains.codeanalysis import fdwrapclass
from capc.failuredomains.machine import Network

logger = logging.getLogger("capc.capacity")


@fdwrapclass
class MockCapacitySource(CapacitySourceInterface):
    """
    In memory capacity source.

        source = MockCapacitySource()
        source.add_network("net1", network_type="Shared")
        source.add_public_ips("net1", free=2, allocated=1)
    """

    def __init__(self) -> None:
        self.networks: Dict[ft.NetworkName, Network] = {}
        self.addresses: Dict[ft.NetworkId, List[PublicIpAddress]] = {}
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[Tuple[str, str]] = []
        self.__next_id = 1

    def add_network(
        self,
        name: str,
        network_type: ft.NetworkType = ft.NETWORK_TYPE_SHARED,
        network_id: Optional[str] = None,
    ) -> Network:
        if not network_id:
            network_id = "net-id-{}".format(self.__next_id)
            self.__next_id += 1
        network = Network(ft.NetworkName(name), ft.NetworkId(network_id), network_type)
        self.networks[network.name] = network
        self.addresses.setdefault(network.id, [])
        return network

    def add_public_ips(
        self, network_name: str, free: int = 0, allocated: int = 0, **states: int
    ) -> List[PublicIpAddress]:
        network = self.networks[ft.NetworkName(network_name)]
        counts = dict(states)
        counts[ft.IP_STATE_FREE] = counts.get(ft.IP_STATE_FREE, 0) + free
        counts["Allocated"] = counts.get("Allocated", 0) + allocated

        added = []
        for state, count in counts.items():
            for _ in range(count):
                n = len(self.addresses[network.id]) + 1
                address = PublicIpAddress(
                    state,
                    id="ip-{}-{}".format(network.id, n),
                    ip_address=ft.IpAddress("10.0.{}.{}".format(len(self.addresses), n)),
                    network_id=network.id,
                )
                self.addresses[network.id].append(address)
                added.append(address)
        return added

    def fail(self, operation: str, key: str, error: Exception) -> None:
        """
        Makes the next calls of an operation raise error. key is the network name
        for resolve_network/get_public_ips and the account name for
        new_client_in_domain_and_account.
        """
        self.failures[(operation, key)] = error

    def _check_failure(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        if (operation, key) in self.failures:
            raise self.failures[(operation, key)]

    def resolve_network(self, network: Network) -> None:
        self._check_failure("resolve_network", network.name)

        known = self.networks.get(network.name)
        if known is None and network.id:
            for candidate in self.networks.values():
                if candidate.id == network.id:
                    known = candidate
                    break

        if known is None:
            raise CapacitySourceError(
                "expected 1 Network with name {}, but got 0".format(network.name)
            )

        network.id = known.id
        network.name = known.name
        network.type = known.type
        logger.debug("Resolved %s", network)

    def get_public_ips(self, network: Network) -> List[PublicIpAddress]:
        self._check_failure("get_public_ips", network.name)
        return list(self.addresses.get(network.id, []))

    def new_client_in_domain_and_account(
        self, domain: ft.DomainPath, account: ft.AccountName
    ) -> "MockCapacitySource":
        self._check_failure("new_client_in_domain_and_account", account)
        return self

    def __str__(self) -> str:
        return "MockCapacitySource(networks={})".format(list(self.networks.keys()))

    def __repr__(self) -> str:
        return str(self)
