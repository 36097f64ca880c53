"""
Capability Registry — Maps capability name → descriptor + handler.

Pure lookup, no logic. Populated at startup, read-only afterwards.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from shared.errors import UnknownCapabilityError
from shared.models import CapabilityDescriptor

logger = logging.getLogger(__name__)


class CapabilityHandler(Protocol):
    """Protocol that all capability handlers must follow (sync or async)."""

    def __call__(self, arguments: dict[str, Any], session_id: str) -> Any:
        """Run the capability. Raise CapabilityError (or let transport errors escape) on failure."""
        ...


class CapabilityRegistry:
    """Registry mapping capability names to their descriptors."""

    def __init__(self) -> None:
        self._capabilities: dict[str, CapabilityDescriptor] = {}
        self._frozen = False

    def register(
        self,
        descriptor: CapabilityDescriptor,
        handler: CapabilityHandler | None = None,
    ) -> CapabilityDescriptor:
        """Register a capability. ``handler`` overrides the descriptor's own."""
        if self._frozen:
            raise RuntimeError("Capability registry is frozen; register capabilities at startup.")
        if descriptor.name in self._capabilities:
            raise ValueError(f"Capability '{descriptor.name}' is already registered.")
        if handler is not None:
            descriptor = descriptor.model_copy(update={"handler": handler})
        if descriptor.handler is None:
            raise ValueError(f"Capability '{descriptor.name}' has no handler.")
        self._capabilities[descriptor.name] = descriptor
        logger.info(
            "Registered capability: %s%s",
            descriptor.name,
            " (sensitive)" if descriptor.sensitive else "",
        )
        return descriptor

    def freeze(self) -> None:
        self._frozen = True

    def resolve(self, name: str) -> CapabilityDescriptor | None:
        """Resolve a capability by name. Returns None if not found."""
        return self._capabilities.get(name)

    def require(self, name: str) -> CapabilityDescriptor:
        descriptor = self._capabilities.get(name)
        if descriptor is None:
            raise UnknownCapabilityError(name)
        return descriptor

    def is_sensitive(self, name: str) -> bool:
        descriptor = self._capabilities.get(name)
        return bool(descriptor and descriptor.sensitive)

    def catalog(self) -> list[dict[str, Any]]:
        """Planner-facing schema entries for every registered capability."""
        return [descriptor.catalog_entry() for descriptor in self._capabilities.values()]

    @property
    def registered_capabilities(self) -> list[str]:
        """List all registered capability names."""
        return list(self._capabilities.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)
