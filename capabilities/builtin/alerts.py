"""
In-memory price alert book.

Alerts are kept per session for the lifetime of the process; nothing is
persisted and nothing polls prices.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from shared.errors import CapabilityValidationError

logger = logging.getLogger(__name__)

CONDITIONS = ("above", "below")


class PriceAlertBook:
    """Per-session price alerts with create/list/delete handlers."""

    def __init__(self) -> None:
        self._alerts: dict[str, dict[str, dict[str, Any]]] = {}

    def create_price_alert(self, arguments: dict[str, Any], session_id: str) -> dict[str, Any]:
        token = str(arguments.get("tokenAddress") or "").strip()
        if not token:
            raise CapabilityValidationError("'tokenAddress' is required", capability="create_price_alert")
        try:
            target = float(arguments.get("targetPrice"))
        except (TypeError, ValueError):
            raise CapabilityValidationError(
                f"'targetPrice' must be a number, got {arguments.get('targetPrice')!r}",
                capability="create_price_alert",
            )
        if target <= 0:
            raise CapabilityValidationError("'targetPrice' must be positive", capability="create_price_alert")
        condition = str(arguments.get("condition") or "").strip().lower()
        if condition not in CONDITIONS:
            raise CapabilityValidationError(
                f"'condition' must be one of {', '.join(CONDITIONS)}",
                capability="create_price_alert",
            )

        alert = {
            "alertId": uuid.uuid4().hex[:8],
            "tokenAddress": token,
            "targetPrice": target,
            "condition": condition,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self._alerts.setdefault(session_id, {})[alert["alertId"]] = alert
        logger.info("Price alert %s created for session %s", alert["alertId"], session_id)
        return {"created": True, "alert": alert}

    def view_price_alerts(self, arguments: dict[str, Any], session_id: str) -> dict[str, Any]:
        alerts = list(self._alerts.get(session_id, {}).values())
        return {"count": len(alerts), "alerts": alerts}

    def delete_price_alert(self, arguments: dict[str, Any], session_id: str) -> dict[str, Any]:
        alert_id = str(arguments.get("alertId") or "").strip()
        removed = self._alerts.get(session_id, {}).pop(alert_id, None)
        if removed is None:
            raise CapabilityValidationError(f"No alert with id '{alert_id}'", capability="delete_price_alert")
        return {"deleted": True, "alertId": alert_id}

    def handlers(self) -> dict[str, Any]:
        return {
            "create_price_alert": self.create_price_alert,
            "price_alert": self.create_price_alert,
            "view_price_alerts": self.view_price_alerts,
            "delete_price_alert": self.delete_price_alert,
        }
