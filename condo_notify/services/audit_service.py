"""
Audit Service - append-only delivery and access logs

Writes here are best-effort: a failing insert is reported to the
operational log and never breaks the operation being audited.
"""
import logging
from typing import Optional, List, Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from condo_notify.config import config
from condo_notify.database.models import WhatsAppNotificationLog, MagicLinkAccessLog


def truncate(text: Optional[str], limit: int = None) -> Optional[str]:
    if text is None:
        return None
    limit = limit or config.RESPONSE_BODY_LIMIT
    return text if len(text) <= limit else text[:limit]


async def _append(session: AsyncSession, entry: Any, label: str) -> bool:
    session.add(entry)
    try:
        await session.commit()
        return True
    except Exception as e:
        logging.error(f"Failed to write {label} audit entry: {e}")
        await session.rollback()
        return False


async def log_delivery_attempt(
    session: AsyncSession,
    function_name: str,
    phone: Optional[str],
    success: bool,
    template_name: Optional[str] = None,
    template_language: Optional[str] = None,
    request_payload: Optional[dict] = None,
    response_status: Optional[int] = None,
    response_body: Optional[str] = None,
    message_id: Optional[str] = None,
    error_message: Optional[str] = None,
    debug_info: Optional[dict] = None,
    resident_id: Optional[int] = None,
) -> WhatsAppNotificationLog:
    """Record one dispatch attempt; returns the entry even if it could not be stored"""
    entry = WhatsAppNotificationLog(
        function_name=function_name,
        resident_id=resident_id,
        phone=phone,
        template_name=template_name,
        template_language=template_language,
        request_payload=request_payload,
        response_status=response_status,
        response_body=truncate(response_body),
        success=success,
        message_id=message_id,
        error_message=error_message,
        debug_info=debug_info,
    )
    await _append(session, entry, "delivery")
    return entry


async def log_access_attempt(
    session: AsyncSession,
    token_id: str,
    success: bool,
    resident_id: Optional[int] = None,
    occurrence_id: Optional[str] = None,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    is_new_user: bool = False,
    redirect_url: Optional[str] = None,
    error_message: Optional[str] = None,
) -> MagicLinkAccessLog:
    entry = MagicLinkAccessLog(
        token_id=token_id,
        resident_id=resident_id,
        occurrence_id=occurrence_id,
        user_id=user_id,
        ip_address=ip_address,
        user_agent=user_agent,
        success=success,
        is_new_user=is_new_user,
        redirect_url=redirect_url,
        error_message=error_message,
    )
    await _append(session, entry, "access")
    return entry


async def list_delivery_attempts(
    session: AsyncSession,
    success: Optional[bool] = None,
    function_name: Optional[str] = None,
    limit: int = 100,
) -> List[WhatsAppNotificationLog]:
    stmt = select(WhatsAppNotificationLog)
    if success is not None:
        stmt = stmt.where(WhatsAppNotificationLog.success == success)
    if function_name:
        stmt = stmt.where(WhatsAppNotificationLog.function_name == function_name)
    stmt = stmt.order_by(WhatsAppNotificationLog.created_at.desc(), WhatsAppNotificationLog.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_access_attempts(
    session: AsyncSession,
    success: Optional[bool] = None,
    token_id: Optional[str] = None,
    limit: int = 100,
) -> List[MagicLinkAccessLog]:
    stmt = select(MagicLinkAccessLog)
    if success is not None:
        stmt = stmt.where(MagicLinkAccessLog.success == success)
    if token_id:
        stmt = stmt.where(MagicLinkAccessLog.token_id == token_id)
    stmt = stmt.order_by(MagicLinkAccessLog.access_at.desc(), MagicLinkAccessLog.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
