"""
Ordered provider registry used for Roblox API failover.

Providers are interchangeable base URLs for the same public API (the official
host plus proxies). :class:`ProviderList` keeps them in preference order and
moves a provider to the front whenever it serves a request successfully, so
later calls try the most recently reliable provider first.

The list is process-wide shared state. Readers only ever get an immutable
snapshot from :meth:`ProviderList.try_in_order`; :meth:`ProviderList.promote`
is the only mutation and runs under a lock without awaiting.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple


@dataclass(frozen=True, slots=True)
class ProviderEndpoint:
    """A named base-URL template, e.g. ``https://{subdomain}.roblox.com``."""

    name: str
    url_template: str

    def base_url(self, subdomain: str) -> str:
        return self.url_template.format(subdomain=subdomain).rstrip("/")

    def url_for(self, subdomain: str, path: str) -> str:
        normalized = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url(subdomain)}{normalized}"

    @classmethod
    def parse(cls, entry: str) -> "ProviderEndpoint":
        """Build an endpoint from ``name=template`` (or a bare template)."""

        name, sep, template = entry.partition("=")
        if not sep:
            template = name
            name = template.split("//", 1)[-1].split("/", 1)[0].replace("{subdomain}.", "")
        return cls(name=name.strip(), url_template=template.strip())


class ProviderList:
    """Thread-safe ordered collection of :class:`ProviderEndpoint`."""

    def __init__(self, endpoints: Iterable[ProviderEndpoint]) -> None:
        ordered: list[ProviderEndpoint] = []
        seen: set[str] = set()
        for endpoint in endpoints:
            if endpoint.name in seen:
                raise ValueError(f"Duplicate provider name: {endpoint.name}")
            seen.add(endpoint.name)
            ordered.append(endpoint)
        if not ordered:
            raise ValueError("ProviderList requires at least one endpoint")
        self._endpoints = ordered
        self._lock = threading.Lock()

    @classmethod
    def from_templates(cls, entries: Sequence[str]) -> "ProviderList":
        return cls(ProviderEndpoint.parse(entry) for entry in entries)

    def try_in_order(self) -> Tuple[ProviderEndpoint, ...]:
        """Return a snapshot of the current preference order."""

        with self._lock:
            return tuple(self._endpoints)

    def promote(self, endpoint: ProviderEndpoint) -> None:
        """Move ``endpoint`` to the front, keeping the others' relative order."""

        with self._lock:
            try:
                idx = self._endpoints.index(endpoint)
            except ValueError:
                return
            if idx == 0:
                return
            self._endpoints.insert(0, self._endpoints.pop(idx))

    def names(self) -> list[str]:
        return [endpoint.name for endpoint in self.try_in_order()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)


__all__ = ["ProviderEndpoint", "ProviderList"]
