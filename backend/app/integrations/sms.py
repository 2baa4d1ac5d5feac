from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from typing import Protocol
from urllib import parse, request

from pydantic import BaseModel


TWILIO_MESSAGES_ENDPOINT_TEMPLATE = (
    "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
)
logger = logging.getLogger("roombooking.integrations.sms")


class DeliveryOutcome(BaseModel):
    delivered: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "DeliveryOutcome":
        return cls(delivered=True)

    @classmethod
    def failed(cls, reason: str) -> "DeliveryOutcome":
        return cls(delivered=False, reason=reason)


def mask_address(address: str) -> str:
    """Keep only the last four digits of a phone number for log output."""
    return f"***{address[-4:]}" if len(address) > 4 else "***"


class Notifier(Protocol):
    async def send(self, address: str, message: str) -> DeliveryOutcome: ...


class TwilioSmsNotifier:
    """Sends text messages through the Twilio Messages REST API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        http_timeout_seconds: float = 15,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.http_timeout_seconds = http_timeout_seconds

    async def send(self, address: str, message: str) -> DeliveryOutcome:
        if not address:
            return DeliveryOutcome.failed("missing address")
        return await asyncio.to_thread(self._post_message, address, message)

    def _post_message(self, address: str, message: str) -> DeliveryOutcome:
        endpoint = TWILIO_MESSAGES_ENDPOINT_TEMPLATE.format(
            account_sid=parse.quote(self.account_sid, safe="")
        )
        form_payload = parse.urlencode(
            {"To": address, "From": self.from_number, "Body": message}
        ).encode("utf-8")
        credentials = base64.b64encode(
            f"{self.account_sid}:{self.auth_token}".encode("utf-8")
        ).decode("ascii")

        req = request.Request(
            endpoint,
            data=form_payload,
            headers={
                "Authorization": f"Basic {credentials}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            method="POST",
        )
        try:
            with request.urlopen(req, timeout=self.http_timeout_seconds) as resp:
                body = resp.read().decode("utf-8")
        except Exception as exc:
            logger.warning(
                "Twilio send failed to=%s error=%s", mask_address(address), str(exc)
            )
            return DeliveryOutcome.failed("transport error")

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return DeliveryOutcome.failed("invalid response")

        if payload.get("error_code"):
            return DeliveryOutcome.failed(f"twilio error {payload['error_code']}")
        logger.info(
            "Twilio message queued to=%s sid=%s", mask_address(address), payload.get("sid")
        )
        return DeliveryOutcome.ok()


class LoggingNotifier:
    """Development notifier: logs the message instead of sending it."""

    async def send(self, address: str, message: str) -> DeliveryOutcome:
        if not address:
            return DeliveryOutcome.failed("missing address")
        logger.info("SMS to=%s body=%s", mask_address(address), message)
        return DeliveryOutcome.ok()


def build_notifier() -> Notifier:
    account_sid = os.getenv("TWILIO_ACCOUNT_SID", "").strip()
    auth_token = os.getenv("TWILIO_AUTH_TOKEN", "").strip()
    from_number = os.getenv("TWILIO_FROM_NUMBER", "").strip()
    if account_sid and auth_token and from_number:
        return TwilioSmsNotifier(
            account_sid=account_sid,
            auth_token=auth_token,
            from_number=from_number,
        )

    logger.warning("Twilio configuration is incomplete; SMS will only be logged.")
    return LoggingNotifier()
