"""
Capability Gateway — Controls access to capabilities.

Responsibility:
- Validate capability availability via CapabilityRegistry
- Invoke sync or async handlers through one awaitable contract
- Normalize whatever a handler raises into CapabilityError

Prohibitions:
- No retries (the retry resolver owns attempt budgets)
- No user interaction
"""

import asyncio
import inspect
import logging
from typing import Any

import httpx

from capabilities.registry import CapabilityRegistry
from observability.logger import Observability
from shared.errors import CapabilityError, OrchestratorError

logger = logging.getLogger(__name__)


class CapabilityGateway:
    """Controlled access layer to capability handlers."""

    def __init__(self, registry: CapabilityRegistry, timeout_seconds: float | None = None):
        self.registry = registry
        self.timeout_seconds = timeout_seconds

    async def invoke(self, name: str, arguments: dict[str, Any], session_id: str) -> Any:
        """
        Invoke a capability by name.
        Returns the raw payload; raises CapabilityError (or a subclass) on failure.
        """
        descriptor = self.registry.require(name)
        obs = Observability(session_id)
        try:
            with obs.measure("capability_call", {"capability": name}):
                outcome = descriptor.handler(dict(arguments), session_id)
                if inspect.isawaitable(outcome):
                    if self.timeout_seconds:
                        outcome = await asyncio.wait_for(outcome, timeout=self.timeout_seconds)
                    else:
                        outcome = await outcome
        except OrchestratorError:
            raise
        except asyncio.TimeoutError as e:
            raise CapabilityError(
                f"Capability '{name}' timed out (ETIMEDOUT)",
                capability=name,
                code="ETIMEDOUT",
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code if e.response is not None else None
            raise CapabilityError(
                f"Capability '{name}' upstream returned HTTP {status}",
                capability=name,
                status_code=status,
            ) from e
        except httpx.TimeoutException as e:
            raise CapabilityError(
                f"Capability '{name}' upstream timed out (ETIMEDOUT): {e}",
                capability=name,
                code="ETIMEDOUT",
            ) from e
        except httpx.TransportError as e:
            raise CapabilityError(
                f"Capability '{name}' NetworkError: {e}",
                capability=name,
                code="NetworkError",
            ) from e
        except Exception as e:
            logger.exception("Capability '%s' raised an unexpected error", name)
            raise CapabilityError(
                str(e) or type(e).__name__,
                capability=name,
                code=getattr(e, "code", None),
                status_code=getattr(e, "status_code", None),
            ) from e

        logger.info("Capability '%s' executed", name)
        return outcome
