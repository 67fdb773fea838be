"""Reconciles provider delivery-status webhooks with notification logs.

Provider payloads are flattened into ``WebhookEvent`` records, normalized
to a canonical event vocabulary and applied to the matching log. Providers
resend webhooks that are not acknowledged, so processing errors are logged
and acknowledged rather than surfaced; only a bad signature is rejected.
"""

import hashlib
import hmac
import json
from collections.abc import Callable
from typing import Any

import structlog

from notifications.clock import Clock, SystemClock
from notifications.enums import CanonicalEvent, NotificationLogStatus
from notifications.exceptions import WebhookSignatureError
from notifications.repositories import NotificationLogRepository
from notifications.schemas.notification import (
    NotificationLogEntry,
    NotificationLogUpdate,
)
from notifications.schemas.webhook import WebhookAck, WebhookEvent
from notifications.services.retry_policy import RetryPolicy

logger = structlog.get_logger(__name__)

PERMANENT_FAILURE_EVENTS = (
    CanonicalEvent.BOUNCED,
    CanonicalEvent.BLOCKED,
    CanonicalEvent.SPAM_COMPLAINT,
    CanonicalEvent.DROPPED,
)
TEMPORARY_FAILURE_EVENTS = (CanonicalEvent.DEFERRED, CanonicalEvent.DELAYED)
ENGAGEMENT_EVENTS = (CanonicalEvent.OPENED, CanonicalEvent.CLICKED)


def normalize_event(event: str | None, status: str | None = None) -> CanonicalEvent:
    """Map a provider event/status pair onto the canonical vocabulary.

    Rules are checked in a fixed order and compared case-insensitively;
    anything unrecognised is ``UNKNOWN``.

    Args:
        event: Provider event name.
        status: Provider status value.

    Returns:
        The canonical event.
    """
    event = (event or "").strip().lower()
    status = (status or "").strip().lower()

    if (
        event in ("delivered", "delivery")
        or status == "delivered"
        or (event == "send" and status == "success")
    ):
        return CanonicalEvent.DELIVERED
    if event in ("open", "opened"):
        return CanonicalEvent.OPENED
    if event in ("click", "clicked"):
        return CanonicalEvent.CLICKED
    if event in ("bounce", "bounced") or status in ("bounce", "bounced"):
        return CanonicalEvent.BOUNCED
    if event in ("block", "blocked") or status == "blocked":
        return CanonicalEvent.BLOCKED
    if event in ("spam", "spamreport", "spam_report") or (
        "spam" in event and "complaint" in event
    ):
        return CanonicalEvent.SPAM_COMPLAINT
    if event in ("deferred", "defer") or status == "deferred":
        return CanonicalEvent.DEFERRED
    if event in ("delayed", "delay") or status == "delayed":
        return CanonicalEvent.DELAYED
    if event in ("dropped", "drop") or status == "dropped":
        return CanonicalEvent.DROPPED
    return CanonicalEvent.UNKNOWN


def compute_signature(secret: str, raw_body: bytes) -> str:
    """HMAC-SHA256 hex digest of the raw request body."""
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def _signature_candidates(signature: str) -> list[str]:
    # Accepts "<hex>", "sha256=<hex>", "v1=<hex>" and comma-separated lists
    candidates = []
    for part in signature.split(","):
        part = part.strip()
        if not part:
            continue
        scheme, separator, value = part.partition("=")
        if not separator:
            candidates.append(part.lower())
        elif scheme.strip().lower() in ("sha256", "v1"):
            candidates.append(value.strip().lower())
    return candidates


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _flatten_generic(body: Any, provider: str) -> list[WebhookEvent]:
    items = body if isinstance(body, list) else [body]
    events = []
    for item in items:
        if not isinstance(item, dict):
            continue
        data = {
            **item,
            "event": _as_text(item.get("event")) or "",
            "status": _as_text(item.get("status")) or "",
            "timestamp": _as_text(item.get("timestamp")),
        }
        data.setdefault("provider", provider)
        events.append(WebhookEvent.model_validate(data))
    return events


def _flatten_sendgrid(body: Any, provider: str) -> list[WebhookEvent]:
    items = body if isinstance(body, list) else [body]
    events = []
    for item in items:
        if not isinstance(item, dict):
            continue
        log_id = item.get("logId") or item.get("log_id")
        events.append(
            WebhookEvent(
                event=item.get("event") or "",
                status=_as_text(item.get("status")) or "",
                message_id=item.get("sg_message_id") or item.get("smtp-id"),
                recipient=item.get("email"),
                reason=item.get("reason") or item.get("response"),
                description=item.get("type"),
                timestamp=_as_text(item.get("timestamp")),
                metadata={"logId": log_id} if log_id else {},
                provider=provider,
            )
        )
    return events


def _flatten_mailgun(body: Any, provider: str) -> list[WebhookEvent]:
    if not isinstance(body, dict):
        return []
    data = body.get("event-data") or {}
    event = data.get("event") or ""
    severity = data.get("severity") or ""
    if event == "failed":
        event = "bounced" if severity == "permanent" else "deferred"
    delivery_status = data.get("delivery-status") or {}
    headers = (data.get("message") or {}).get("headers") or {}
    user_variables = data.get("user-variables") or {}
    log_id = user_variables.get("logId") or user_variables.get("log_id")
    return [
        WebhookEvent(
            event=event,
            status=severity,
            message_id=headers.get("message-id"),
            recipient=data.get("recipient"),
            reason=delivery_status.get("description")
            or delivery_status.get("message")
            or data.get("reason"),
            description=data.get("reason"),
            timestamp=_as_text(data.get("timestamp")),
            metadata={"logId": log_id} if log_id else {},
            provider=provider,
        )
    ]


_SES_EVENTS = {
    "delivery": "delivered",
    "open": "open",
    "click": "click",
    "complaint": "spam_report",
    "deliverydelay": "delayed",
    "reject": "blocked",
    "renderingfailure": "dropped",
}


def _flatten_ses(body: Any, provider: str) -> list[WebhookEvent]:
    if not isinstance(body, dict):
        return []
    if body.get("Type") == "SubscriptionConfirmation":
        logger.info(
            "ses_subscription_confirmation_received",
            topic_arn=body.get("TopicArn"),
            subscribe_url=body.get("SubscribeURL"),
        )
        return []
    message = body.get("Message", body)
    if isinstance(message, str):
        message = json.loads(message)

    kind = (message.get("notificationType") or message.get("eventType") or "").lower()
    mail = message.get("mail") or {}
    bounce = message.get("bounce") or {}
    if kind == "bounce":
        event = "bounced" if bounce.get("bounceType") == "Permanent" else "deferred"
    else:
        event = _SES_EVENTS.get(kind, kind)

    bounced = bounce.get("bouncedRecipients") or [{}]
    destination = mail.get("destination") or []
    tags = mail.get("tags") or {}
    log_ids = tags.get("logId") or tags.get("log_id") or []
    return [
        WebhookEvent(
            event=event,
            status=bounce.get("bounceType") or "",
            message_id=mail.get("messageId"),
            recipient=bounced[0].get("emailAddress") or (destination[0] if destination else None),
            reason=bounced[0].get("diagnosticCode") or bounce.get("bounceSubType"),
            description=kind,
            timestamp=_as_text(mail.get("timestamp")),
            metadata={"logId": log_ids[0]} if log_ids else {},
            provider=provider,
        )
    ]


PROVIDER_PARSERS: dict[str, Callable[[Any, str], list[WebhookEvent]]] = {
    "generic": _flatten_generic,
    "sendgrid": _flatten_sendgrid,
    "mailgun": _flatten_mailgun,
    "ses": _flatten_ses,
}


class WebhookReconciler:
    """Applies provider delivery events to notification logs."""

    def __init__(
        self,
        repository: NotificationLogRepository,
        clock: Clock | None = None,
        secret: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize the reconciler.

        Args:
            repository: Notification log store.
            clock: Source of event timestamps; defaults to the system clock.
            secret: Shared HMAC secret; when empty, signatures are not checked.
            retry_policy: Retry budget applied to temporary failures.
        """
        self.repository = repository
        self.clock = clock or SystemClock()
        self.secret = secret or ""
        self.retry_policy = retry_policy or RetryPolicy()

    def verify_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """Check the HMAC-SHA256 signature of a raw webhook body.

        Returns:
            True when the signature matches or no secret is configured.
        """
        if not self.secret:
            return True
        if not signature:
            return False
        expected = compute_signature(self.secret, raw_body)
        return any(
            hmac.compare_digest(expected, candidate)
            for candidate in _signature_candidates(signature)
        )

    def handle(
        self,
        raw_body: bytes,
        provider: str = "generic",
        signature: str | None = None,
    ) -> WebhookAck:
        """Verify, parse and apply one webhook delivery.

        Args:
            raw_body: Request body exactly as received.
            provider: Provider name selecting the payload format.
            signature: Value of the signature header.

        Returns:
            An acknowledgement; ``success`` is False when processing failed.

        Raises:
            WebhookSignatureError: If the signature is missing or wrong.
        """
        provider = (provider or "generic").lower()
        if not self.verify_signature(raw_body, signature):
            logger.warning("webhook_signature_invalid", provider=provider)
            raise WebhookSignatureError()

        try:
            body = json.loads(raw_body or b"{}")
            events = self.parse_events(body, provider)
            processed = sum(1 for event in events if self.process_event(event))
        except Exception:
            logger.exception("webhook_processing_failed", provider=provider)
            return WebhookAck(
                success=False, message="Error processing webhook, but acknowledged"
            )

        if events and not processed:
            message = "Webhook received, but no matching notification found"
        else:
            message = "Webhook processed successfully"
        return WebhookAck(success=True, message=message, processed=processed)

    def parse_events(self, body: Any, provider: str) -> list[WebhookEvent]:
        """Flatten a provider payload into events; unknown providers use the generic shape."""
        parser = PROVIDER_PARSERS.get(provider, _flatten_generic)
        return parser(body, provider)

    def resolve_log(self, event: WebhookEvent) -> NotificationLogEntry | None:
        """Find the log an event refers to.

        Tried in order: the ``logId`` carried in event metadata, the
        provider message id, then the most recent log for the recipient.
        The recipient fallback can attribute an event to the wrong message
        when several were sent to the same address.
        """
        if event.log_id:
            log = self.repository.find_by_id(event.log_id)
            if log is not None:
                return log
        if event.message_id:
            log = self.repository.find_by_metadata("message_id", event.message_id)
            if log is not None:
                return log
        if event.recipient:
            log = self.repository.find_latest_for_recipient(event.recipient)
            if log is not None:
                logger.warning(
                    "webhook_recipient_fallback_used",
                    log_id=log.id,
                    recipient=event.recipient,
                    provider=event.provider,
                    event=event.event,
                )
            return log
        return None

    def process_event(self, event: WebhookEvent) -> bool:
        """Apply one event to its log.

        Returns:
            True when a matching log was found and updated.
        """
        canonical = normalize_event(event.event, event.status).value
        log = self.resolve_log(event)
        if log is None:
            logger.warning(
                "webhook_log_not_found",
                provider=event.provider,
                event=event.event,
                message_id=event.message_id,
                recipient=event.recipient,
            )
            return False

        now = self.clock.now().isoformat()
        reason = event.reason or event.description or "No reason provided"

        if canonical == CanonicalEvent.DELIVERED:
            metadata = {"delivered_at": now, "provider": event.provider}
            if event.message_id:
                metadata["message_id"] = event.message_id
            self.repository.mark_as_sent(log.id, metadata=metadata)
        elif canonical in ENGAGEMENT_EVENTS:
            name = canonical
            self.repository.merge_metadata(
                log.id,
                metadata={name: True, f"{name}_at": now},
                nested={"engagement": {name: True}},
            )
        elif canonical in PERMANENT_FAILURE_EVENTS:
            self.repository.update(
                log.id,
                NotificationLogUpdate(
                    metadata={"failure_type": canonical, "provider": event.provider}
                ),
            )
            self.repository.record_failed_attempt(
                log.id,
                f"Email {canonical}: {reason}",
                self.retry_policy.max_retries,
                self.retry_policy.base_delay_ms,
                permanent=True,
            )
        elif canonical in TEMPORARY_FAILURE_EVENTS:
            if log.status != NotificationLogStatus.RETRYING:
                self.repository.record_failed_attempt(
                    log.id,
                    f"Email {canonical}: {reason}",
                    self.retry_policy.max_retries,
                    self.retry_policy.base_delay_ms,
                )
        else:
            self.repository.merge_metadata(
                log.id,
                append={
                    "webhook_events": {
                        "event": canonical,
                        "timestamp": now,
                        "provider": event.provider,
                        "original_event": event.event,
                        "original_status": event.status,
                    }
                },
            )

        logger.info(
            "webhook_event_applied",
            log_id=log.id,
            event=canonical,
            provider=event.provider,
            message_id=event.message_id,
        )
        return True
