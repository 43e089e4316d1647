"""
Delivery status webhooks

Every provider reports delivery receipts in its own shape; they are
normalized to DeliveryStatus values and applied to notifications_sent.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Dict, Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from condo_notify.database.models import NotificationSent, DeliveryStatus, utcnow

STATUS_ALIASES = {
    "sent": DeliveryStatus.sent,
    "enviado": DeliveryStatus.sent,
    "server": DeliveryStatus.sent,
    "delivered": DeliveryStatus.delivered,
    "entregue": DeliveryStatus.delivered,
    "received": DeliveryStatus.delivered,
    "recebido": DeliveryStatus.delivered,
    "read": DeliveryStatus.read,
    "lido": DeliveryStatus.read,
    "viewed": DeliveryStatus.read,
    "visualizado": DeliveryStatus.read,
    "failed": DeliveryStatus.failed,
    "erro": DeliveryStatus.failed,
    "error": DeliveryStatus.failed,
    "falha": DeliveryStatus.failed,
    "pending": DeliveryStatus.pending,
    "pendente": DeliveryStatus.pending,
    "queued": DeliveryStatus.pending,
}

# WPPConnect ack codes (4 = audio played)
WPPCONNECT_ACKS = {
    -1: DeliveryStatus.failed,
    0: DeliveryStatus.pending,
    1: DeliveryStatus.sent,
    2: DeliveryStatus.delivered,
    3: DeliveryStatus.read,
    4: DeliveryStatus.read,
}


@dataclass
class StatusUpdate:
    message_id: Optional[str]
    status: Optional[str]
    updated: int = 0


def normalize_status(status: Any) -> str:
    value = str(status).strip().lower()
    known = STATUS_ALIASES.get(value)
    return known.value if known else value


def normalize_wppconnect_ack(ack: Any) -> str:
    try:
        known = WPPCONNECT_ACKS.get(int(ack))
    except (TypeError, ValueError):
        known = None
    return known.value if known else "unknown"


def parse_status_payload(payload: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return (message_id, normalized status) for any supported provider"""
    key = payload.get("key") if isinstance(payload.get("key"), dict) else {}

    # Z-PRO
    if payload.get("messageId") and payload.get("status"):
        return str(payload["messageId"]), normalize_status(payload["status"])
    # Z-API
    if payload.get("id") and payload.get("status"):
        return str(payload["id"]), normalize_status(payload["status"])
    # Evolution
    if key.get("id") and payload.get("update"):
        return str(key["id"]), normalize_status(payload["update"])
    # WPPConnect
    if "ack" in payload:
        message_id = payload.get("id")
        if isinstance(message_id, dict):
            message_id = message_id.get("_serialized") or message_id.get("id")
        return (str(message_id) if message_id else None), normalize_wppconnect_ack(payload["ack"])
    return None, None


async def apply_status_update(session: AsyncSession, payload: Dict[str, Any]) -> StatusUpdate:
    message_id, status = parse_status_payload(payload or {})
    if not message_id:
        logging.info("Status webhook without message id, ignoring")
        return StatusUpdate(None, status)

    result = await session.execute(
        select(NotificationSent).where(NotificationSent.provider_message_id == message_id)
    )
    notifications = result.scalars().all()

    now = utcnow()
    for notification in notifications:
        notification.delivery_status = status
        if status in (DeliveryStatus.delivered.value, DeliveryStatus.read.value) and notification.delivered_at is None:
            notification.delivered_at = now
        if status == DeliveryStatus.read.value and notification.read_at is None:
            notification.read_at = now

    await session.commit()
    logging.info(f"Status webhook: message {message_id} -> {status} ({len(notifications)} updated)")
    return StatusUpdate(message_id, status, len(notifications))
