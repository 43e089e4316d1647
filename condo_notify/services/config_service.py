"""
WhatsApp Config Service - the single active provider configuration
"""
import logging
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from condo_notify.database.models import WhatsAppConfig, WhatsAppProviderName
from condo_notify.services.providers import ProviderSettings


async def get_active_config(session: AsyncSession) -> Optional[WhatsAppConfig]:
    """Most recently created active config, if any"""
    stmt = (
        select(WhatsAppConfig)
        .where(WhatsAppConfig.is_active == True)
        .order_by(WhatsAppConfig.created_at.desc(), WhatsAppConfig.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def to_settings(wa_config: WhatsAppConfig) -> ProviderSettings:
    return ProviderSettings(
        api_url=wa_config.api_url,
        api_key=wa_config.api_key,
        instance_id=wa_config.instance_id or "",
    )


async def save_config(
    session: AsyncSession,
    provider: str,
    api_url: str,
    api_key: str,
    instance_id: str = None,
    app_url: str = None,
) -> WhatsAppConfig:
    """
    Store a new active config.

    Older rows are deactivated, never deleted, so the history of
    credentials stays available to administrators.
    """
    provider_name = WhatsAppProviderName(provider).value

    await session.execute(
        update(WhatsAppConfig)
        .where(WhatsAppConfig.is_active == True)
        .values(is_active=False)
    )

    wa_config = WhatsAppConfig(
        provider=provider_name,
        api_url=api_url.rstrip("/"),
        api_key=api_key,
        instance_id=instance_id,
        app_url=app_url.rstrip("/") if app_url else None,
        is_active=True,
    )
    session.add(wa_config)
    await session.commit()

    logging.info(f"WhatsApp config saved: provider={provider_name}, id={wa_config.id}")
    return wa_config


async def deactivate_config(session: AsyncSession) -> bool:
    """Deactivate the active config (soft delete)"""
    wa_config = await get_active_config(session)
    if not wa_config:
        return False

    wa_config.is_active = False
    await session.commit()
    logging.info(f"WhatsApp config {wa_config.id} deactivated")
    return True
