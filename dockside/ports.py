"""
Port map: translates a sandbox's internal ports to the host ports the
runtime assigned when the container started.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from dockside.models import PortProtocol

logger = logging.getLogger(__name__)

PortKey = Tuple[int, PortProtocol]


class Ports:
    """
    Snapshot of a container's published ports.

    Keys are (internal_port, protocol) and unique. A Ports object is never
    refreshed; ask the runtime for a new one when current values are needed.
    """

    def __init__(self, mapping: Optional[Mapping[PortKey, int]] = None) -> None:
        self._mapping: Dict[PortKey, int] = dict(mapping or {})

    @classmethod
    def from_inspect(cls, payload: Mapping[str, Any]) -> "Ports":
        """
        Build from a container-inspect document.

        Reads NetworkSettings.Ports, shaped like
        {"27017/tcp": [{"HostIp": "0.0.0.0", "HostPort": "49153"}], "53/udp": null}.
        Unpublished ports (null bindings) are skipped. When the runtime reports
        both an IPv4 and an IPv6 binding, the IPv4 one wins.
        """
        network = payload.get("NetworkSettings") or {}
        raw = network.get("Ports") or {}

        mapping: Dict[PortKey, int] = {}
        for key, bindings in raw.items():
            if not bindings:
                continue
            internal, _, proto = key.partition("/")
            try:
                port_key = (int(internal), PortProtocol(proto or "tcp"))
            except ValueError:
                logger.debug("Skipping unrecognised port key %r", key)
                continue

            chosen = None
            for binding in bindings:
                host_port = binding.get("HostPort")
                if not host_port:
                    continue
                if ":" not in (binding.get("HostIp") or ""):
                    chosen = int(host_port)
                    break
                if chosen is None:
                    chosen = int(host_port)
            if chosen is not None:
                mapping[port_key] = chosen

        return cls(mapping)

    def map_to_host_port(
        self, internal: int, protocol: PortProtocol = PortProtocol.TCP
    ) -> Optional[int]:
        """Host port for an internal port, or None if it was never mapped."""
        return self._mapping.get((internal, PortProtocol(protocol)))

    def __contains__(self, key: object) -> bool:
        return key in self._mapping

    def __iter__(self) -> Iterator[PortKey]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ports):
            return NotImplemented
        return self._mapping == other._mapping

    def __repr__(self) -> str:
        return f"Ports({self._mapping!r})"

    def to_dict(self) -> Dict[str, int]:
        """Runtime notation, e.g. {"27017/tcp": 49153}."""
        return {
            f"{internal}/{proto.value}": host
            for (internal, proto), host in sorted(
                self._mapping.items(), key=lambda item: (item[0][0], item[0][1].value)
            )
        }
