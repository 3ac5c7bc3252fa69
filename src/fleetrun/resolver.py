"""Pick the address used to reach a node from its reported attributes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

UNKNOWN_ADDRESS = "unknown"

EC2 = "ec2"
RACKSPACE = "rackspace"
EUCALYPTUS = "eucalyptus"


class NodeAttributes:
    """Read-only view over a node's attribute tree.

    Accepts either the flat attribute mapping or a full node record, in
    which case the ``automatic`` subtree is used.
    """

    def __init__(self, node: Mapping[str, Any]) -> None:
        automatic = node.get("automatic")
        self._attrs: Mapping[str, Any] = automatic if isinstance(automatic, Mapping) else node

    def get(self, key: str) -> Any:
        return self._attrs.get(key)

    @property
    def cloud(self) -> Mapping[str, Any] | None:
        cloud = self._attrs.get("cloud")
        return cloud if isinstance(cloud, Mapping) else None

    @property
    def is_cloud(self) -> bool:
        return self.cloud is not None

    @property
    def cloud_provider(self) -> str | None:
        if not self.is_cloud:
            return None
        return self.cloud.get("provider")

    @property
    def is_ec2(self) -> bool:
        return self.cloud_provider == EC2

    @property
    def is_rackspace(self) -> bool:
        return self.cloud_provider == RACKSPACE

    @property
    def is_eucalyptus(self) -> bool:
        return self.cloud_provider == EUCALYPTUS

    @property
    def public_hostname(self) -> str | None:
        """Cloud public hostname for cloud nodes, the FQDN otherwise."""
        if self.is_cloud:
            return self.cloud.get("public_hostname")
        return self._attrs.get("fqdn")

    @property
    def public_ipv4(self) -> str | None:
        """Cloud public IPv4 for cloud nodes, the plain IP otherwise."""
        if self.is_cloud:
            return self.cloud.get("public_ipv4")
        return self._attrs.get("ipaddress")

    @property
    def address(self) -> str:
        if self.is_cloud:
            for key in ("public_hostname", "public_ipv4"):
                value = self.cloud.get(key)
                if value:
                    return str(value)
        for key in ("fqdn", "ipaddress"):
            value = self._attrs.get(key)
            if value:
                return str(value)
        return UNKNOWN_ADDRESS


def resolve(node: Mapping[str, Any]) -> str:
    """Return the single address used to reach ``node``.

    First match wins: cloud public hostname, cloud public IPv4, FQDN, plain
    IP address. Returns ``UNKNOWN_ADDRESS`` when nothing is usable.
    """
    return NodeAttributes(node).address
