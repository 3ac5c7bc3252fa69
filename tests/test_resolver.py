"""Tests for address resolution and provider classification."""
from __future__ import annotations

from fleetrun.resolver import UNKNOWN_ADDRESS, NodeAttributes, resolve


def test_cloud_public_hostname_wins() -> None:
    node = {"cloud": {"provider": "ec2", "public_hostname": "x.com", "public_ipv4": "1.2.3.4"}}
    assert resolve(node) == "x.com"


def test_cloud_public_ipv4_without_hostname() -> None:
    assert resolve({"cloud": {"provider": "ec2", "public_ipv4": "1.2.3.4"}}) == "1.2.3.4"


def test_fqdn_for_non_cloud_node() -> None:
    assert resolve({"fqdn": "internal.example"}) == "internal.example"


def test_ipaddress_when_no_fqdn() -> None:
    assert resolve({"ipaddress": "192.168.1.1"}) == "192.168.1.1"


def test_cloud_node_without_public_addresses_falls_back_to_fqdn() -> None:
    node = {"cloud": {"provider": "rackspace"}, "fqdn": "db.internal", "ipaddress": "10.1.1.1"}
    assert resolve(node) == "db.internal"


def test_unresolvable_node_returns_sentinel() -> None:
    assert resolve({}) == UNKNOWN_ADDRESS
    assert resolve({"cloud": {"provider": "ec2"}}) == UNKNOWN_ADDRESS


def test_node_record_uses_automatic_subtree() -> None:
    record = {"name": "web1", "automatic": {"cloud": {"public_hostname": "33.33.33.10"}}}
    assert resolve(record) == "33.33.33.10"


def test_provider_predicates() -> None:
    ec2 = NodeAttributes({"cloud": {"provider": "ec2"}})
    assert ec2.is_cloud
    assert ec2.is_ec2
    assert not ec2.is_rackspace
    assert not ec2.is_eucalyptus
    assert ec2.cloud_provider == "ec2"

    euca = NodeAttributes({"cloud": {"provider": "eucalyptus"}})
    assert euca.is_eucalyptus
    assert not euca.is_ec2

    rack = NodeAttributes({"cloud": {"provider": "rackspace"}})
    assert rack.is_rackspace


def test_no_cloud_attribute_is_not_cloud() -> None:
    attrs = NodeAttributes({"fqdn": "reset.internal.example.com"})
    assert not attrs.is_cloud
    assert attrs.cloud_provider is None
    assert not attrs.is_ec2
    assert not attrs.is_rackspace
    assert not attrs.is_eucalyptus


def test_public_accessors_fall_back_for_non_cloud_nodes() -> None:
    attrs = NodeAttributes({"fqdn": "reset.internal.example.com", "ipaddress": "192.168.1.1"})
    assert attrs.public_hostname == "reset.internal.example.com"
    assert attrs.public_ipv4 == "192.168.1.1"

    cloud = NodeAttributes({"cloud": {"provider": "ec2", "public_ipv4": "10.0.0.1"}})
    assert cloud.public_ipv4 == "10.0.0.1"
    assert cloud.public_hostname is None
