import hashlib
from copy import deepcopy
from typing import Any, Dict, Optional

from immutabledict import immutabledict

from capc.failuredomains import fdtypes as ft
from capc.failuredomains.codeanalysis import fdwrapclass
from capc.failuredomains.util import ConfigurationException

FAILURE_DOMAIN_LABEL_NAME = "cloudstackfailuredomain.infrastructure.cluster.x-k8s.io/name"
CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
CONTROL_PLANE_LABEL = "cluster.x-k8s.io/control-plane"

MACHINE_STATE_FAILED = "Failed"


def failure_domain_hashed_meta_name(
    fd_name: ft.FailureDomainName, cluster_name: ft.ClusterName
) -> str:
    """
    Derives the value stored under FAILURE_DOMAIN_LABEL_NAME. The length prefix
    keeps ("ab", "c") and ("a", "bc") apart. 32 hex characters fits a label value.
    """
    key = "{}:{}{}".format(len(fd_name), fd_name, cluster_name)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


@fdwrapclass
class Network:
    def __init__(
        self,
        name: ft.NetworkName,
        id: ft.NetworkId = ft.NetworkId(""),
        type: ft.NetworkType = "",
    ) -> None:
        self.name = name
        self.id = id
        self.type = type

    @property
    def is_isolated(self) -> bool:
        return self.type == ft.NETWORK_TYPE_ISOLATED

    def clone(self) -> "Network":
        return Network(self.name, self.id, self.type)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Network":
        return Network(
            ft.NetworkName(d.get("name", "")),
            ft.NetworkId(d.get("id", "")),
            d.get("type", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "id": self.id, "type": self.type}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Network):
            return False
        return self.to_dict() == other.to_dict()

    def __str__(self) -> str:
        return "Network(name={}, id={}, type={})".format(self.name, self.id, self.type)

    def __repr__(self) -> str:
        return str(self)


@fdwrapclass
class ZoneSpec:
    def __init__(
        self, name: ft.ZoneName, network: Network, id: ft.ZoneId = ft.ZoneId("")
    ) -> None:
        self.name = name
        self.id = id
        self.network = network

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ZoneSpec":
        return ZoneSpec(
            ft.ZoneName(d.get("name", "")),
            Network.from_dict(d.get("network", {})),
            ft.ZoneId(d.get("id", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "id": self.id, "network": self.network.to_dict()}

    def __str__(self) -> str:
        return "ZoneSpec(name={}, id={}, network={})".format(
            self.name, self.id, self.network
        )

    def __repr__(self) -> str:
        return str(self)


@fdwrapclass
class FailureDomainSpec:
    """
    A candidate placement: a zone, its network and the credentials used to
    query it. 'endpoint' names an entry of the "endpoints" config section.
    """

    def __init__(
        self,
        name: ft.FailureDomainName,
        zone: Optional[ZoneSpec] = None,
        account: ft.AccountName = ft.AccountName(""),
        domain: ft.DomainPath = ft.DomainPath(""),
        endpoint: ft.EndpointName = ft.EndpointName("default"),
    ) -> None:
        if not name:
            raise ConfigurationException("failure domain name is required")
        self.name = name
        self.zone = zone or ZoneSpec(ft.ZoneName(""), Network(ft.NetworkName("")))
        self.account = account
        self.domain = domain
        self.endpoint = endpoint

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FailureDomainSpec":
        return FailureDomainSpec(
            ft.FailureDomainName(d.get("name", "")),
            ZoneSpec.from_dict(d.get("zone", {})),
            ft.AccountName(d.get("account", "")),
            ft.DomainPath(d.get("domain", "")),
            ft.EndpointName(d.get("endpoint", "default")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "zone": self.zone.to_dict(),
            "account": self.account,
            "domain": self.domain,
            "endpoint": self.endpoint,
        }

    def __str__(self) -> str:
        return "FailureDomainSpec(name={}, zone={})".format(self.name, self.zone)

    def __repr__(self) -> str:
        return str(self)


@fdwrapclass
class CloudStackMachine:
    """
    The infrastructure machine being placed. Balancers only ever write
    failure_domain_name and labels.
    """

    def __init__(
        self,
        name: ft.MachineName,
        failure_domain_name: ft.FailureDomainName = ft.FailureDomainName(""),
        labels: Optional[ft.Labels] = None,
        deletion_timestamp: Optional[float] = None,
    ) -> None:
        self.name = name
        self.failure_domain_name = failure_domain_name
        self.labels: ft.Labels = dict(labels or {})
        self.deletion_timestamp = deletion_timestamp
        self.status: Optional[str] = None
        self.failure_reason: Optional[str] = None

    def mark_as_failed(self, reason: str = "") -> None:
        self.status = MACHINE_STATE_FAILED
        self.failure_reason = reason or None

    def has_failed(self) -> bool:
        return self.status == MACHINE_STATE_FAILED

    def mark_for_deletion(self, timestamp: float) -> None:
        self.deletion_timestamp = timestamp

    @property
    def being_deleted(self) -> bool:
        return self.deletion_timestamp is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "failure_domain_name": self.failure_domain_name,
            "labels": deepcopy(self.labels),
            "status": self.status,
            "failure_reason": self.failure_reason,
            "deletion_timestamp": self.deletion_timestamp,
        }

    def __str__(self) -> str:
        return "CloudStackMachine(name={}, failure_domain={}, failed={})".format(
            self.name, self.failure_domain_name, self.has_failed()
        )

    def __repr__(self) -> str:
        return str(self)


@fdwrapclass
class CAPIMachine:
    """
    The orchestration level machine. failure_domain is the placement hint: None
    means no hint was given at all, "" means the hint field exists but is empty.
    """

    def __init__(
        self,
        name: ft.MachineName,
        cluster_name: ft.ClusterName,
        failure_domain: Optional[ft.FailureDomainName] = None,
        labels: Optional[ft.Labels] = None,
    ) -> None:
        self.name = name
        self.cluster_name = cluster_name
        self.failure_domain = failure_domain
        self.labels = immutabledict(labels or {})

    @property
    def is_control_plane(self) -> bool:
        return CONTROL_PLANE_LABEL in self.labels

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cluster_name": self.cluster_name,
            "failure_domain": self.failure_domain,
            "labels": dict(self.labels),
        }

    def __str__(self) -> str:
        return "CAPIMachine(name={}, cluster={}, failure_domain={})".format(
            self.name, self.cluster_name, self.failure_domain
        )

    def __repr__(self) -> str:
        return str(self)


def capi_machine_has_failure_domain(capi_machine: Optional[CAPIMachine]) -> bool:
    return (
        capi_machine is not None
        and capi_machine.failure_domain is not None
        and (
            # control plane machines always get a failure domain from CAPI
            capi_machine.is_control_plane
            # or potentially another machine controller specified one.
            or capi_machine.failure_domain != ""
        )
    )


def assign_failure_domain_label(
    cs_machine: CloudStackMachine, capi_machine: Optional[CAPIMachine]
) -> None:
    if capi_machine is not None:
        cluster_name = capi_machine.cluster_name
    else:
        cluster_name = ft.ClusterName(cs_machine.labels.get(CLUSTER_NAME_LABEL, ""))

    cs_machine.labels[FAILURE_DOMAIN_LABEL_NAME] = failure_domain_hashed_meta_name(
        cs_machine.failure_domain_name, cluster_name
    )
