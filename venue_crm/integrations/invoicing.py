"""Invoicing push for booked leads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import requests

from venue_crm.core.config import Config, get_config
from venue_crm.schemas.leads import LeadSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoicingResult:
    success: bool
    invoicing_id: str | None = None
    error: str | None = None


class InvoicingClient:
    def __init__(self, config: Config | None = None) -> None:
        self.config = config or get_config()

    def _payload(self, lead: LeadSnapshot) -> dict:
        return {
            "clientName": lead.client_name,
            "phone": lead.phone,
            "email": lead.email or "",
            "eventDate": lead.event_date.isoformat() if lead.event_date else None,
            "eventType": lead.event_type,
            "guestCount": lead.guests,
            "package": "Standard",
            "agreedAmount": lead.amount,
            "crmLeadId": lead.id,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }

    def push_booking(self, lead: LeadSnapshot) -> InvoicingResult:
        """Create the booking in the invoicing system. Never raises."""
        if not self.config.invoicing_configured:
            logger.warning(
                "invoicing.not_configured",
                extra={"event": "invoicing.not_configured", "lead_id": lead.id},
            )
            return InvoicingResult(success=False, error="Invoicing not configured")

        try:
            response = requests.post(
                f"{self.config.INVOICING_API_ENDPOINT.rstrip('/')}/api/bookings",
                headers={"Authorization": f"Bearer {self.config.INVOICING_API_KEY}"},
                json=self._payload(lead),
                timeout=self.config.HTTP_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning(
                "invoicing.push.failed",
                extra={"event": "invoicing.push.failed", "lead_id": lead.id, "error": str(exc)},
            )
            return InvoicingResult(success=False, error=str(exc))

        invoicing_id = data.get("id") or data.get("bookingId")
        if not invoicing_id:
            return InvoicingResult(success=False, error="Invoicing response had no booking id")
        logger.info(
            "invoicing.push.succeeded",
            extra={"event": "invoicing.push.succeeded", "lead_id": lead.id, "invoicing_id": invoicing_id},
        )
        return InvoicingResult(success=True, invoicing_id=str(invoicing_id))
