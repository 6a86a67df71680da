"""SMS paging through the FitSMS HTTP API.

Alert bodies are summarized to fit a single SMS with one ChatOpenAI call; if
no OpenAI key is configured or the call fails, the text is truncated instead.
Send functions never raise; they return an ``SmsResult`` and
log errors.
"""

import logging
from typing import Any

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, SecretStr

from src.alerts.models import AlertEvent
from src.config import get_settings
from src.observability.metrics import SMS_SENT_TOTAL

logger = logging.getLogger(__name__)

SMS_MAX_LENGTH = 160

SUMMARY_PROMPT = (
    "Summarize technical alerts for SMS. "
    'Format: "[SEVERITY] Service: <Name> \\nIssue: <Concise Issue> \\nValue: <Key Metric>". '
    "Keep it under 160 characters total. Use newlines for readability."
)


class SmsResult(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None


def is_sms_configured() -> bool:
    """Check whether the FitSMS token and a default recipient are present."""
    settings = get_settings()
    return bool(settings.fitsms_api_key and settings.sms_recipient)


def _truncate(text: str) -> str:
    if len(text) <= SMS_MAX_LENGTH:
        return text
    return text[: SMS_MAX_LENGTH - 3] + "..."


async def summarize_message(text: str) -> str:
    """Condense an alert payload into one SMS-sized message."""
    settings = get_settings()
    if not settings.openai_api_key:
        logger.warning("No OpenAI key, skipping summarization")
        return _truncate(text)

    try:
        llm = ChatOpenAI(
            model=settings.openai_model,
            api_key=SecretStr(settings.openai_api_key),
            temperature=0.0,
            max_tokens=60,
            base_url=settings.openai_base_url or None,
        )
        response = await llm.ainvoke(
            [
                SystemMessage(content=SUMMARY_PROMPT),
                HumanMessage(content=f"Summarize this alert: {text}"),
            ]
        )
        summary = str(response.content).strip()
        return summary or _truncate(text)
    except Exception:
        logger.exception("OpenAI summarization failed")
        return _truncate(text)


async def send_sms(
    recipient: str,
    message: str,
    *,
    sender_id: str | None = None,
    should_summarize: bool = True,
    trigger: str = "manual",
) -> SmsResult:
    """Send an SMS via FitSMS, optionally summarizing the message first.

    Args:
        recipient: Destination phone number.
        message: Message body (summarized when ``should_summarize`` is set).
        sender_id: Overrides the configured FitSMS sender ID.
        should_summarize: Run the body through ``summarize_message`` first.
        trigger: Metrics label, "alert" for webhook-driven pages, "manual" for the API.

    Returns:
        SmsResult with the provider response on success, or the error message.
    """
    settings = get_settings()

    final_message = message
    if should_summarize:
        logger.info("Summarizing SMS body (len: %d)", len(message))
        final_message = await summarize_message(message)

    payload = {
        "recipient": recipient,
        "sender_id": sender_id or settings.fitsms_sender_id,
        "type": "plain",
        "message": final_message,
    }
    headers = {
        "Authorization": f"Bearer {settings.fitsms_api_key}",
        "Accept": "application/json",
    }

    try:
        async with httpx.AsyncClient(timeout=settings.sms_timeout_seconds) as client:
            response = await client.post(settings.fitsms_url, json=payload, headers=headers)
            _ = response.raise_for_status()
    except httpx.HTTPStatusError as e:
        error = _provider_error(e.response)
        SMS_SENT_TOTAL.labels(trigger=trigger, status="error").inc()
        logger.error("FitSMS send failed: HTTP %d - %s", e.response.status_code, error)
        return SmsResult(success=False, error=error)
    except httpx.HTTPError as e:
        SMS_SENT_TOTAL.labels(trigger=trigger, status="error").inc()
        logger.error("FitSMS send failed: %s", e)
        return SmsResult(success=False, error=str(e) or type(e).__name__)

    try:
        data: Any = response.json()
    except ValueError:
        data = response.text

    SMS_SENT_TOTAL.labels(trigger=trigger, status="success").inc()
    logger.info("SMS sent to %s", recipient)
    return SmsResult(success=True, data=data)


def _provider_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"


async def send_alert_sms(event: AlertEvent) -> SmsResult | None:
    """Page the default recipient about an ingested event.

    Returns None without sending when no default recipient is configured.
    """
    settings = get_settings()
    if not settings.sms_recipient:
        logger.warning("Skipping SMS alert: no default recipient configured (SMS_RECIPIENT)")
        return None

    message = event.model_dump_json(indent=2, exclude_none=True)
    return await send_sms(settings.sms_recipient, message, should_summarize=True, trigger="alert")
