"""Structured logging helpers (PII-safe)."""

from typing import Any


def mask_phone(phone: str | None) -> str:
    """Mask a phone number for logs, keeping the last two digits."""
    if not phone:
        return ""
    if len(phone) <= 4:
        return "***"
    return f"{phone[:3]}***{phone[-2:]}"


def build_log_context(
    *,
    record_id: str | None = None,
    appointment_id: str | None = None,
    household_id: str | None = None,
    intent: str | None = None,
    phone: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if record_id:
        context["record_id"] = record_id
    if appointment_id:
        context["appointment_id"] = appointment_id
    if household_id:
        context["household_id"] = household_id
    if intent:
        context["intent"] = intent
    if phone:
        context["phone"] = mask_phone(phone)
    return context
