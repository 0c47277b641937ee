"""
Failure domain balancers.

A balancer picks the failure domain a CloudStackMachine is placed in. Balancers
are composed by wrapping one another; new_failure_domain_balancer builds the
standard chain:

    ReassigningFailureDomainBalancer
        -> FallingBackFailureDomainBalancer
            primary:  FreeIPValidatingFailureDomainBalancer
            fallback: RandomFailureDomainBalancer

Every balancer implements assign(cs_machine, capi_machine, fds), which sets
cs_machine.failure_domain_name (and the failure domain label) or raises a
FailureDomainError.
"""
import random
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import capc.failuredomains.fdlogging as logging
from capc.failuredomains import fdtypes as ft
from capc.failuredomains.capacity.interface import PublicIpAddress
from capc.failuredomains.clientfactory import ClientFactory
from capc.failuredomains.codeanalysis import fdwrapclass
from capc.failuredomains.machine import (
    CAPIMachine,
    CloudStackMachine,
    FailureDomainSpec,
    assign_failure_domain_label,
    capi_machine_has_failure_domain,
)
from capc.failuredomains.util import partition

logger = logging.getLogger("capc.balancer")

NO_FREE_IPS_MESSAGE = (
    "failed to assign failure domain, no failure domain with free IP addresses found"
)


class FailureDomainError(RuntimeError):
    pass


class NoFreeIPsError(FailureDomainError):
    def __init__(self) -> None:
        super().__init__(NO_FREE_IPS_MESSAGE)


class Balancer(ABC):
    @abstractmethod
    def assign(
        self,
        cs_machine: CloudStackMachine,
        capi_machine: Optional[CAPIMachine],
        fds: List[FailureDomainSpec],
    ) -> None:
        ...


def new_failure_domain_balancer(client_factory: ClientFactory) -> Balancer:
    return ReassigningFailureDomainBalancer(
        FallingBackFailureDomainBalancer(
            FreeIPValidatingFailureDomainBalancer(client_factory),
            RandomFailureDomainBalancer(),
        )
    )


@fdwrapclass
class ReassigningFailureDomainBalancer(Balancer):
    """
    Decides whether a placement decision is needed at all.

        1) machines being deleted are left alone
        2) a machine that already has a failure domain and has not failed keeps it
        3) a hint from the CAPI machine is adopted as is
        4) otherwise the delegate decides

    When a failed machine is re-placed and the CAPI machine carries a hint, the new
    failure domain is written back to the hint so the next pass does not adopt the
    stale value again.
    """

    def __init__(self, delegate: Balancer) -> None:
        self.delegate = delegate

    def assign(
        self,
        cs_machine: CloudStackMachine,
        capi_machine: Optional[CAPIMachine],
        fds: List[FailureDomainSpec],
    ) -> None:
        if cs_machine.being_deleted:
            return

        logger.info(
            "Checking failure domain for machine %s: machine_has_failed=%s current_failure_domain='%s'",
            cs_machine.name,
            cs_machine.has_failed(),
            cs_machine.failure_domain_name,
        )

        if cs_machine.failure_domain_name and not cs_machine.has_failed():
            return

        uses_hint = capi_machine_has_failure_domain(capi_machine)

        if (
            uses_hint
            and capi_machine is not None
            and capi_machine.failure_domain
            and not cs_machine.has_failed()
        ):
            cs_machine.failure_domain_name = capi_machine.failure_domain
            assign_failure_domain_label(cs_machine, capi_machine)
            logging.reprolog(
                "assigned",
                balancer="hint",
                machine=cs_machine,
                failure_domain=cs_machine.failure_domain_name,
            )
            logger.info(
                "Adopted failure domain %s from %s",
                cs_machine.failure_domain_name,
                capi_machine,
            )
        else:
            self.delegate.assign(cs_machine, capi_machine, fds)

        if uses_hint and capi_machine is not None and cs_machine.has_failed():
            logger.info(
                "Updating failure domain of %s from %s to %s",
                capi_machine.name,
                capi_machine.failure_domain,
                cs_machine.failure_domain_name,
            )
            capi_machine.failure_domain = cs_machine.failure_domain_name

    def __repr__(self) -> str:
        return "ReassigningFailureDomainBalancer({})".format(self.delegate)


@fdwrapclass
class FallingBackFailureDomainBalancer(Balancer):
    def __init__(self, primary: Balancer, fallback: Balancer) -> None:
        self.primary = primary
        self.fallback = fallback

    def assign(
        self,
        cs_machine: CloudStackMachine,
        capi_machine: Optional[CAPIMachine],
        fds: List[FailureDomainSpec],
    ) -> None:
        try:
            self.primary.assign(cs_machine, capi_machine, fds)
            return
        except Exception as e:
            logger.warning(
                "Unable to assign failure domain, falling back to the secondary balancer: %s",
                e,
            )
            logger.debug("Primary balancer failure", exc_info=True)
            logging.reprolog("fallback", machine=cs_machine.name, error=str(e))

        self.fallback.assign(cs_machine, capi_machine, fds)

    def __repr__(self) -> str:
        return "FallingBackFailureDomainBalancer(primary={}, fallback={})".format(
            self.primary, self.fallback
        )


@fdwrapclass
class RandomFailureDomainBalancer(Balancer):
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def assign(
        self,
        cs_machine: CloudStackMachine,
        capi_machine: Optional[CAPIMachine],
        fds: List[FailureDomainSpec],
    ) -> None:
        if not fds:
            raise FailureDomainError(
                "failed to assign failure domain, no failure domains given"
            )
        # weak randomness is fine for spreading placements
        cs_machine.failure_domain_name = self.rng.choice(fds).name  # nosec B311
        assign_failure_domain_label(cs_machine, capi_machine)
        logging.reprolog(
            "assigned",
            balancer="random",
            machine=cs_machine,
            failure_domain=cs_machine.failure_domain_name,
            candidates=[fd.name for fd in fds],
        )
        logger.info(
            "Randomly assigned failure domain %s to %s",
            cs_machine.failure_domain_name,
            cs_machine.name,
        )

    def __repr__(self) -> str:
        return "RandomFailureDomainBalancer()"


class ZoneIPCounts:
    """Public IP summary of one failure domain, only lives for one decision."""

    def __init__(
        self,
        name: ft.FailureDomainName,
        zone_name: ft.ZoneName,
        network_name: ft.NetworkName,
        total_ips: int,
        free_ips: int,
    ) -> None:
        self.name = name
        self.zone_name = zone_name
        self.network_name = network_name
        self.total_ips = total_ips
        self.free_ips = free_ips

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "zone_name": self.zone_name,
            "network_name": self.network_name,
            "total_ips": self.total_ips,
            "free_ips": self.free_ips,
        }

    def __str__(self) -> str:
        return "ZoneIPCounts(name={}, network={}, free={}/{})".format(
            self.name, self.network_name, self.free_ips, self.total_ips
        )

    def __repr__(self) -> str:
        return str(self)


@fdwrapclass
class FreeIPValidatingFailureDomainBalancer(Balancer):
    """
    Prefers the network with the most free public IPs. Failure domains that point at
    the same network (by name) share that network's capacity, so once the best
    network is known any of its failure domains is an equally good choice. Isolated
    networks are NATed and never contribute public capacity.
    """

    def __init__(
        self, client_factory: ClientFactory, rng: Optional[random.Random] = None
    ) -> None:
        self.client_factory = client_factory
        self.rng = rng or random.Random()

    def assign(
        self,
        cs_machine: CloudStackMachine,
        capi_machine: Optional[CAPIMachine],
        fds: List[FailureDomainSpec],
    ) -> None:
        network_and_zones = self.discover_free_ips(fds)
        logging.reprolog(
            "free_ip_snapshot", machine=cs_machine.name, networks=network_and_zones
        )

        zones_with_most_ips = find_network_with_free_ips(network_and_zones)
        if not zones_with_most_ips:
            raise NoFreeIPsError()

        selected_zone = self.rng.choice(zones_with_most_ips)  # nosec B311
        cs_machine.failure_domain_name = selected_zone.name
        assign_failure_domain_label(cs_machine, capi_machine)
        logging.reprolog(
            "assigned",
            balancer="free_ip",
            machine=cs_machine,
            failure_domain=selected_zone.name,
            candidates=zones_with_most_ips,
        )
        logger.info(
            "Assigned failure domain %s to %s (network %s has %d free IPs)",
            selected_zone.name,
            cs_machine.name,
            selected_zone.network_name,
            selected_zone.free_ips,
        )

    def discover_free_ips(
        self, fds: List[FailureDomainSpec]
    ) -> Dict[ft.NetworkName, List[ZoneIPCounts]]:
        logger.info(
            "Finding failure domains with most free IPs: %s", [fd.name for fd in fds]
        )

        counts: List[ZoneIPCounts] = []

        for fd in fds:
            try:
                _, cs_user = self.client_factory.get_cloud_client_and_user(fd)
            except Exception as e:
                raise FailureDomainError(
                    "failed to get CS client for failure domain {}: {}".format(
                        fd.name, e
                    )
                ) from e

            network = fd.zone.network.clone()
            if not network.id:
                try:
                    cs_user.resolve_network(network)
                except Exception as e:
                    raise FailureDomainError(
                        "failed to resolve failure domain network {}: {}".format(
                            fd.name, e
                        )
                    ) from e

            logger.debug("Resolved failure domain network %s for %s", network, fd.name)
            if network.is_isolated:
                continue

            try:
                addresses = cs_user.get_public_ips(network)
            except Exception as e:
                raise FailureDomainError(
                    "failed to determine free IP addresses for failure domain {}: {}".format(
                        fd.name, e
                    )
                ) from e

            count_summary = ZoneIPCounts(
                name=fd.name,
                zone_name=fd.zone.name,
                network_name=network.name,
                total_ips=len(addresses),
                free_ips=count_free_ips(addresses),
            )
            logger.info(
                "Resolved failure domain network IP count summary: domain=%s total_ips=%d free_ips=%d",
                fd.name,
                count_summary.total_ips,
                count_summary.free_ips,
            )
            counts.append(count_summary)

        return partition(counts, lambda c: c.network_name)


def find_network_with_free_ips(
    counts: Dict[ft.NetworkName, List[ZoneIPCounts]]
) -> List[ZoneIPCounts]:
    """
    Returns every entry of the network group that holds the single largest free
    IP count, or [] when no failure domain has a free IP. Which group wins when two
    networks tie is undefined.
    """
    key_with_max_free_ips: Optional[ft.NetworkName] = None
    max_free_ips = 0

    for key, zone_counts in counts.items():
        for c in zone_counts:
            if c.free_ips > max_free_ips:
                max_free_ips = c.free_ips
                key_with_max_free_ips = key

    if key_with_max_free_ips is None:
        return []
    return list(counts[key_with_max_free_ips])


def count_free_ips(addresses: List[PublicIpAddress]) -> int:
    return len([a for a in addresses if a.is_free])
