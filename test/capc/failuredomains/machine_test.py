import pytest
from hypothesis import given
from hypothesis import strategies as s

from capc.failuredomains import fdtypes as ft
from capc.failuredomains.machine import (
    CLUSTER_NAME_LABEL,
    CONTROL_PLANE_LABEL,
    FAILURE_DOMAIN_LABEL_NAME,
    CAPIMachine,
    CloudStackMachine,
    FailureDomainSpec,
    Network,
    assign_failure_domain_label,
    capi_machine_has_failure_domain,
    failure_domain_hashed_meta_name,
)
from capc.failuredomains.util import ConfigurationException


def _hash(fd: str, cluster: str) -> str:
    return failure_domain_hashed_meta_name(
        ft.FailureDomainName(fd), ft.ClusterName(cluster)
    )


@given(s.text(), s.text())
def test_hashed_meta_name_is_deterministic(fd: str, cluster: str) -> None:
    first = _hash(fd, cluster)
    assert first == _hash(fd, cluster)
    assert len(first) == 32
    assert all(c in "0123456789abcdef" for c in first)


@given(s.text(), s.text(), s.text(), s.text())
def test_hashed_meta_name_is_distinct(
    fd1: str, cluster1: str, fd2: str, cluster2: str
) -> None:
    if (fd1, cluster1) != (fd2, cluster2):
        assert _hash(fd1, cluster1) != _hash(fd2, cluster2)


def test_hashed_meta_name_boundaries() -> None:
    assert _hash("ab", "c") != _hash("a", "bc")
    assert _hash("fd1", "") != _hash("", "fd1")


def test_assign_failure_domain_label() -> None:
    machine = CloudStackMachine(
        ft.MachineName("m1"),
        ft.FailureDomainName("fd1"),
        labels={CLUSTER_NAME_LABEL: "from-label"},
    )
    capi = CAPIMachine(ft.MachineName("m1"), ft.ClusterName("c1"))
    assign_failure_domain_label(machine, capi)
    assert machine.labels[FAILURE_DOMAIN_LABEL_NAME] == _hash("fd1", "c1")

    assign_failure_domain_label(machine, None)
    assert machine.labels[FAILURE_DOMAIN_LABEL_NAME] == _hash("fd1", "from-label")

    no_labels = CloudStackMachine(ft.MachineName("m2"), ft.FailureDomainName("fd1"))
    assign_failure_domain_label(no_labels, None)
    assert no_labels.labels == {FAILURE_DOMAIN_LABEL_NAME: _hash("fd1", "")}


def _capi(failure_domain, control_plane: bool) -> CAPIMachine:  # type: ignore
    return CAPIMachine(
        ft.MachineName("m1"),
        ft.ClusterName("c1"),
        failure_domain=failure_domain,
        labels={CONTROL_PLANE_LABEL: ""} if control_plane else {},
    )


def test_capi_machine_has_failure_domain() -> None:
    assert not capi_machine_has_failure_domain(None)
    assert not capi_machine_has_failure_domain(_capi(None, False))
    assert not capi_machine_has_failure_domain(_capi(None, True))
    assert not capi_machine_has_failure_domain(_capi("", False))
    assert capi_machine_has_failure_domain(_capi("", True))
    assert capi_machine_has_failure_domain(_capi("fd1", False))
    assert capi_machine_has_failure_domain(_capi("fd1", True))


def test_capi_labels_are_immutable() -> None:
    capi = _capi("fd1", True)
    assert capi.is_control_plane
    with pytest.raises(TypeError):
        capi.labels["x"] = "y"  # type: ignore
    assert capi.to_dict() == {
        "name": "m1",
        "cluster_name": "c1",
        "failure_domain": "fd1",
        "labels": {CONTROL_PLANE_LABEL: ""},
    }


def test_machine_state() -> None:
    machine = CloudStackMachine(ft.MachineName("m1"))
    assert not machine.has_failed()
    assert not machine.being_deleted
    machine.mark_as_failed("InsufficientCapacity")
    assert machine.has_failed()
    assert machine.failure_reason == "InsufficientCapacity"
    machine.mark_for_deletion(100.0)
    assert machine.being_deleted
    assert machine.to_dict()["status"] == "Failed"


def test_failure_domain_spec_from_dict() -> None:
    d = {
        "name": "fd1",
        "zone": {"name": "zone1", "network": {"name": "net1", "type": "Shared"}},
        "account": "admin",
        "domain": "ROOT/sub",
        "endpoint": "secondary",
    }
    fd = FailureDomainSpec.from_dict(d)
    assert fd.name == "fd1"
    assert fd.zone.name == "zone1"
    assert fd.zone.network == Network(
        ft.NetworkName("net1"), ft.NetworkId(""), ft.NETWORK_TYPE_SHARED
    )
    assert not fd.zone.network.is_isolated
    assert fd.account == "admin"
    assert fd.domain == "ROOT/sub"
    assert fd.endpoint == "secondary"

    expected = dict(d)
    expected["zone"] = {
        "name": "zone1",
        "id": "",
        "network": {"name": "net1", "id": "", "type": "Shared"},
    }
    assert fd.to_dict() == expected

    minimal = FailureDomainSpec.from_dict({"name": "fd2"})
    assert minimal.endpoint == "default"
    assert minimal.account == ""
    assert minimal.zone.network.name == ""

    with pytest.raises(ConfigurationException) as exc_info:
        FailureDomainSpec.from_dict({"name": ""})
    assert str(exc_info.value) == "failure domain name is required"

    with pytest.raises(ConfigurationException):
        FailureDomainSpec.from_dict({"zone": {"name": "z1"}})


def test_network_clone() -> None:
    network = Network(ft.NetworkName("net1"), ft.NetworkId(""), ft.NETWORK_TYPE_ISOLATED)
    assert network.is_isolated
    clone = network.clone()
    assert clone == network
    clone.id = ft.NetworkId("abc")
    assert network.id == ""
    assert clone != network
