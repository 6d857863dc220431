"""SMS transport adapter (HelloSMS).

The dispatcher only sees `SmsTransport.send`, which never raises for
provider errors: every outcome comes back as an `SmsResponse`. Failures
are classified as transient (rate limits, provider unavailable, timeouts)
or permanent; neither is retried automatically.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import httpx

from parcel_sms.core.config import Settings, settings as default_settings
from parcel_sms.core.structured_logging import build_log_context
from parcel_sms.services.exceptions import SmsConfigurationError

logger = logging.getLogger(__name__)

TRANSIENT_HTTP_STATUSES = frozenset({429, 503})
MAX_ERROR_LENGTH = 200


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class SmsRequest:
    to: str  # E.164
    text: str
    sender: str | None = None


@dataclass
class SmsResponse:
    success: bool
    message_id: str | None = None
    error: str | None = None
    http_status: int | None = None
    failure_kind: FailureKind | None = None

    @property
    def error_summary(self) -> str:
        """Short failure description suitable for storage (no raw bodies)."""
        kind = self.failure_kind.value if self.failure_kind else "unknown"
        parts = [kind]
        if self.http_status:
            parts.append(f"HTTP {self.http_status}")
        if self.error:
            parts.append(self.error)
        return ": ".join(parts)[:MAX_ERROR_LENGTH]


def classify_failure(http_status: int | None) -> FailureKind:
    """429 and 503 are transient; every other non-2xx is permanent."""
    if http_status in TRANSIENT_HTTP_STATUSES:
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT


def failed_response(error: str, http_status: int | None = None, kind: FailureKind | None = None) -> SmsResponse:
    return SmsResponse(
        success=False,
        error=error,
        http_status=http_status,
        failure_kind=kind or classify_failure(http_status),
    )


class SmsTransport(Protocol):
    async def send(self, request: SmsRequest) -> SmsResponse: ...


class HelloSmsTransport:
    """HelloSMS REST client. In test mode no HTTP call is made."""

    def __init__(
        self,
        *,
        api_url: str,
        username: str,
        password: str,
        sender: str,
        timeout: float,
        test_mode: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout
        self.test_mode = test_mode
        self._transport = transport

    async def send(self, request: SmsRequest) -> SmsResponse:
        if self.test_mode:
            message_id = f"test_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
            logger.info(
                "[TEST MODE] SMS send skipped, message_id=%s",
                message_id,
                extra=build_log_context(phone=request.to),
            )
            return SmsResponse(success=True, message_id=message_id)

        payload = {
            "to": request.to,
            "message": request.text,
            "from": request.sender or self.sender,
            "sendApiCallback": False,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    auth=(self.username, self.password),
                )
        except httpx.TimeoutException:
            logger.warning("HelloSMS timeout", extra=build_log_context(phone=request.to))
            return failed_response("Connection timeout", kind=FailureKind.TRANSIENT)
        except httpx.HTTPError as e:
            logger.warning(
                "HelloSMS connection error: %s",
                e.__class__.__name__,
                extra=build_log_context(phone=request.to),
            )
            return failed_response(
                f"Connection error: {e.__class__.__name__}", kind=FailureKind.TRANSIENT
            )

        return self._parse_response(response)

    def _parse_response(self, response: httpx.Response) -> SmsResponse:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if 200 <= response.status_code < 300 and data.get("status") == "success":
            message_id = None
            message_ids = data.get("messageIds") or []
            if message_ids and isinstance(message_ids[0], dict):
                message_id = message_ids[0].get("apiMessageId")
            return SmsResponse(
                success=True, message_id=message_id, http_status=response.status_code
            )

        status_text = data.get("statusText") or data.get("message")
        error = str(status_text) if status_text else f"HTTP {response.status_code}"
        kind = classify_failure(response.status_code)
        if 200 <= response.status_code < 300:
            # Accepted by HTTP but rejected by the provider
            kind = FailureKind.PERMANENT
        logger.warning(
            "HelloSMS send failed with HTTP %s (%s)", response.status_code, kind.value
        )
        return SmsResponse(
            success=False,
            error=error[:MAX_ERROR_LENGTH],
            http_status=response.status_code,
            failure_kind=kind,
        )


def get_transport(config: Settings | None = None) -> HelloSmsTransport:
    """
    Build the configured transport.

    Raises SmsConfigurationError when live sending lacks credentials, and in
    production whenever credentials are missing (even in test mode).
    """
    config = config or default_settings
    test_mode = config.sms_test_mode

    if not config.sms_credentials_configured and (config.is_production or not test_mode):
        raise SmsConfigurationError(
            "SMS_USERNAME and SMS_PASSWORD must be set for live SMS and in production"
        )
    if test_mode and config.is_production:
        logger.warning("SMS TEST MODE ENABLED IN PRODUCTION: no messages will be sent")

    return HelloSmsTransport(
        api_url=config.SMS_API_URL,
        username=config.SMS_USERNAME,
        password=config.SMS_PASSWORD,
        sender=config.SMS_SENDER_NAME,
        timeout=config.SMS_SEND_TIMEOUT_SECONDS,
        test_mode=test_mode,
    )
