"""Workspace — a mutable collection of parsed resource declarations."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, overload

from . import hcl
from .config import ProviderConfig

if TYPE_CHECKING:
    from .provider import Provider
    from .state import InstanceState

logger = logging.getLogger(__name__)


@dataclass
class ResourceRef:
    """A ``resource "type" "name" { ... }`` declaration."""

    type_name: str
    name: str
    attrs: dict[str, Any]

    @property
    def address(self) -> str:
        return f"{self.type_name}.{self.name}"

    def desired(self) -> dict[str, Any]:
        """Attribute values with variable references expanded."""
        return hcl.interpolate(self.attrs)


class Workspace(Mapping[str, ResourceRef]):
    """Configured workspace that accumulates parsed data, keyed by resource address."""

    def __init__(self, context: dict[str, Any] | None = None) -> None:
        self._context = context
        self._provider: dict[str, Any] | None = None
        self._resources: dict[str, ResourceRef] = {}

    def scan(self, path: str | Path, *, recurse: bool = True) -> None:
        """Load every .hcl file under path, in sorted order."""
        path = Path(path)
        if not path.is_dir():
            raise ValueError(f"Not a directory: {path}")
        pattern = "**/*.hcl" if recurse else "*.hcl"
        for file in sorted(path.glob(pattern)):
            logger.debug("Loading %s", file)
            self.load(hcl.load(file, context=self._context))

    def load(self, data: dict[str, Any]) -> None:
        """Extract provider and resource blocks from a parsed data dict.

        Raises ValueError on a second provider block or a duplicate resource address.
        """
        for provider_block in data.get("provider", []):
            if self._provider is not None:
                raise ValueError("Duplicate provider block")
            logger.debug("Found provider block")
            self._provider = dict(provider_block)

        for res_block in data.get("resource", []):
            for type_name, named in res_block.items():
                for name, attrs in named.items():
                    ref = ResourceRef(type_name=type_name, name=name, attrs=dict(attrs))
                    if ref.address in self._resources:
                        raise ValueError(f"Duplicate resource: '{ref.address}'")
                    logger.debug("Found resource '%s'", ref.address)
                    self._resources[ref.address] = ref

    def provider_config(self) -> ProviderConfig:
        """Settings from the provider block, or defaults when there is none."""
        return ProviderConfig.model_validate(hcl.interpolate(self._provider or {}))

    def apply(
        self,
        provider: Provider,
        ids: Mapping[str, str] | None = None,
    ) -> dict[str, InstanceState | None]:
        """Apply every declared resource in declaration order.

        ids maps resource addresses to the ids of existing instances.
        """
        ids = ids or {}
        results: dict[str, InstanceState | None] = {}
        for address, ref in self._resources.items():
            logger.info("Applying %s", address)
            results[address] = provider.apply(ref.type_name, ids.get(address), ref.desired())
        return results

    def __getitem__(self, address: str) -> ResourceRef:
        return self._resources[address]

    def __contains__(self, address: object) -> bool:
        return address in self._resources

    def __iter__(self) -> Iterator[str]:
        return iter(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    @overload
    def get(self, address: str) -> ResourceRef | None: ...
    @overload
    def get(self, address: str, default: ResourceRef) -> ResourceRef: ...
    @overload
    def get(self, address: str, default: None) -> ResourceRef | None: ...
    def get(self, address: str, default: Any = None) -> ResourceRef | None:
        return self._resources.get(address, default)

    def filter(self, addresses: Iterable[str]) -> list[ResourceRef]:
        """Return resources matching the given addresses, preserving input order."""
        return [r for a in addresses if (r := self._resources.get(a)) is not None]

    def __repr__(self) -> str:
        has_provider = self._provider is not None
        return f"Workspace(provider={has_provider}, resources={len(self._resources)})"
