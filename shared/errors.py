"""
Error taxonomy shared by every layer.

Capability handlers raise CapabilityError (or let transport errors escape);
the executor converts whatever reaches it into a StructuredError record.
Only PlannerError and unexpected resolver failures travel up to the session.
"""

from __future__ import annotations

from typing import Any


class OrchestratorError(Exception):
    """Base class for all orchestration errors."""


# ─── Capability invocation ────────────────────────────────────

class CapabilityError(OrchestratorError):
    """A capability invocation failed.

    ``code`` mirrors network error codes (``ECONNRESET``, ``ETIMEDOUT``...)
    and ``status_code`` the HTTP status of the upstream call, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        capability: str = "",
        code: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.capability = capability
        self.code = code
        self.status_code = status_code


class CapabilityValidationError(CapabilityError):
    """Arguments are malformed or incomplete. Never retried."""


class UnknownCapabilityError(CapabilityValidationError):
    """The requested capability is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown capability: '{name}'", capability=name)


class InsufficientDataError(CapabilityError):
    """The capability answered, but the payload carries nothing usable."""

    def __init__(self, message: str, *, capability: str = "", payload: Any = None):
        super().__init__(message, capability=capability)
        self.payload = payload


# ─── User interaction ─────────────────────────────────────────

class UserCancelledError(OrchestratorError):
    """The user explicitly stopped an operation."""


class ConfirmationDeclinedError(UserCancelledError):
    """A sensitive capability was declined (or its confirmation expired)."""


class PromptTimeoutError(OrchestratorError):
    """The user did not answer a prompt before it expired."""


# ─── Planning ─────────────────────────────────────────────────

class PlannerError(OrchestratorError):
    """The planner could not be consulted or replied with garbage."""
