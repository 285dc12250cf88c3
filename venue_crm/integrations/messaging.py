"""Outbound WhatsApp and SMS channels.

Sends never raise into the automation engine: every outcome, including
transport failures, comes back as a `SendResult`. With sandbox mode on (the
default outside production setups) messages are only logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from venue_crm.core.config import Config, get_config
from venue_crm.utils.validators import normalize_phone, sanitize_text

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
AISENSY_URL = "https://backend.aisensy.com/campaign/t1/api/v2"


@dataclass(frozen=True)
class SendResult:
    success: bool
    channel: str
    to: str | None = None
    message_id: str | None = None
    error: str | None = None
    sandbox: bool = False


class MessagingClient:
    """WhatsApp (Twilio/Wati/Aisensy) and SMS (Twilio) sender."""

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or get_config()
        self.sandbox_mode = self.config.MESSAGING_SANDBOX_MODE
        self.timeout = self.config.HTTP_TIMEOUT_SECONDS

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.config.WA_PROVIDER and self.config.WA_API_KEY)

    @property
    def sms_configured(self) -> bool:
        return bool(self.config.SMS_ACCOUNT_SID and self.config.SMS_AUTH_TOKEN and self.config.SMS_FROM_NUMBER)

    def send_whatsapp(self, phone: str | None, text: str, lead_id: str | None = None) -> SendResult:
        to = normalize_phone(phone)
        if to is None:
            return SendResult(success=False, channel="whatsapp", error="missing phone")
        body = sanitize_text(text, max_len=4096)

        if self.sandbox_mode:
            logger.info(
                "messaging.sandbox.sent",
                extra={"event": "messaging.sandbox.sent", "channel": "whatsapp", "to": to, "lead_id": lead_id},
            )
            return SendResult(success=True, channel="whatsapp", to=to, sandbox=True)

        if not self.whatsapp_configured:
            logger.warning("messaging.whatsapp.not_configured", extra={"event": "messaging.whatsapp.not_configured"})
            return SendResult(success=False, channel="whatsapp", to=to, error="WhatsApp not configured")

        provider = self.config.WA_PROVIDER
        senders = {
            "twilio": self._send_via_twilio,
            "wati": self._send_via_wati,
            "aisensy": self._send_via_aisensy,
        }
        try:
            message_id = senders[provider](to, body)
        except (requests.exceptions.RequestException, ValueError, KeyError) as exc:
            logger.warning(
                "messaging.whatsapp.failed",
                extra={"event": "messaging.whatsapp.failed", "provider": provider, "lead_id": lead_id, "error": str(exc)},
            )
            return SendResult(success=False, channel="whatsapp", to=to, error=str(exc))

        logger.info(
            "messaging.whatsapp.sent",
            extra={"event": "messaging.whatsapp.sent", "provider": provider, "lead_id": lead_id},
        )
        return SendResult(success=True, channel="whatsapp", to=to, message_id=message_id)

    def send_sms(self, phone: str | None, text: str) -> SendResult:
        to = normalize_phone(phone)
        if to is None:
            return SendResult(success=False, channel="sms", error="missing phone")
        body = sanitize_text(text, max_len=1600)

        if self.sandbox_mode:
            logger.info("messaging.sandbox.sent", extra={"event": "messaging.sandbox.sent", "channel": "sms", "to": to})
            return SendResult(success=True, channel="sms", to=to, sandbox=True)

        if not self.sms_configured:
            logger.warning("messaging.sms.not_configured", extra={"event": "messaging.sms.not_configured"})
            return SendResult(success=False, channel="sms", to=to, error="SMS not configured")

        try:
            response = requests.post(
                TWILIO_MESSAGES_URL.format(sid=self.config.SMS_ACCOUNT_SID),
                auth=(self.config.SMS_ACCOUNT_SID, self.config.SMS_AUTH_TOKEN),
                data={"From": self.config.SMS_FROM_NUMBER, "To": f"+{to}", "Body": body},
                timeout=self.timeout,
            )
            response.raise_for_status()
            message_id = response.json().get("sid")
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning("messaging.sms.failed", extra={"event": "messaging.sms.failed", "error": str(exc)})
            return SendResult(success=False, channel="sms", to=to, error=str(exc))

        logger.info("messaging.sms.sent", extra={"event": "messaging.sms.sent"})
        return SendResult(success=True, channel="sms", to=to, message_id=message_id)

    def _send_via_twilio(self, to: str, body: str) -> str | None:
        response = requests.post(
            TWILIO_MESSAGES_URL.format(sid=self.config.WA_API_KEY),
            auth=(self.config.WA_API_KEY, self.config.WA_API_SECRET or ""),
            data={
                "From": f"whatsapp:+{self.config.WA_BUSINESS_NUMBER}",
                "To": f"whatsapp:+{to}",
                "Body": body,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json().get("sid")

    def _send_via_wati(self, to: str, body: str) -> str | None:
        if not self.config.WA_API_ENDPOINT:
            raise ValueError("WA_API_ENDPOINT is required for wati")
        response = requests.post(
            f"{self.config.WA_API_ENDPOINT.rstrip('/')}/api/v1/sendSessionMessage/{to}",
            headers={"Authorization": f"Bearer {self.config.WA_API_KEY}"},
            json={"messageText": body},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("result"):
            raise ValueError(str(data.get("info") or "Wati error"))
        return (data.get("info") or {}).get("id") if isinstance(data.get("info"), dict) else None

    def _send_via_aisensy(self, to: str, body: str) -> str | None:
        response = requests.post(
            AISENSY_URL,
            json={
                "apiKey": self.config.WA_API_KEY,
                "campaignName": "crm_message",
                "destination": to,
                "userName": self.config.APP_NAME,
                "templateParams": [],
                "message": body,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("success"):
            raise ValueError(str(data.get("message") or "Aisensy error"))
        return data.get("messageId")
