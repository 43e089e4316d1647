"""
Magic Link Access Service

Validates the secure link sent with a notification and turns it into a
passwordless sign-in link for the resident.

Flow: token lookup -> expiry check -> identity resolution -> role
assignment -> sign-in link -> audit. Once a token is found and not
expired the notification is marked as read, even when identity
resolution fails; that step can never change the outcome.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Callable, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from condo_notify.config import config
from condo_notify.database.models import (
    NotificationSent, Resident, Apartment, Block, UserRoleAssignment, AppRole,
)
from condo_notify.services import audit_service
from condo_notify.services.config_service import get_active_config
from condo_notify.services.identity_service import IdentityProvider, AccountAlreadyExists

ELEVATED_ROLES = {AppRole.super_admin.value, AppRole.sindico.value, AppRole.porteiro.value}


class AccessOutcome(str, enum.Enum):
    success = "success"
    not_found = "not_found"
    expired = "expired"
    internal_error = "internal_error"


HTTP_STATUS = {
    AccessOutcome.success: 200,
    AccessOutcome.not_found: 404,
    AccessOutcome.expired: 410,
    AccessOutcome.internal_error: 500,
}

ERROR_MESSAGES = {
    AccessOutcome.not_found: "Link inválido",
    AccessOutcome.expired: "Link expirado. Solicite um novo link ao síndico.",
    AccessOutcome.internal_error: "Erro interno do servidor",
}


@dataclass
class AccessResult:
    outcome: AccessOutcome
    magic_link: Optional[str] = None
    resident: Dict[str, Any] = field(default_factory=dict)
    occurrence_id: Optional[str] = None
    is_new_user: bool = False
    redirect_url: Optional[str] = None

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.outcome]

    def to_response(self) -> Dict[str, Any]:
        if self.outcome != AccessOutcome.success:
            return {"error": ERROR_MESSAGES[self.outcome]}
        return {
            "success": True,
            "magicLink": self.magic_link,
            "resident": self.resident,
            "occurrenceId": self.occurrence_id,
            "isNewUser": self.is_new_user,
        }


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def placeholder_email(resident_id: int) -> str:
    return f"resident_{resident_id}@{config.PLACEHOLDER_EMAIL_DOMAIN}"


def resident_summary(resident: Resident) -> Dict[str, Any]:
    apartment = resident.apartment
    block = apartment.block if apartment else None
    condominium = block.condominium if block else None
    return {
        "id": resident.id,
        "fullName": resident.full_name,
        "apartmentNumber": apartment.number if apartment else None,
        "blockName": block.name if block else None,
        "condominiumName": condominium.name if condominium else None,
    }


class AccessTokenVerifier:
    def __init__(
        self,
        session: AsyncSession,
        identity: IdentityProvider,
        clock: Callable[[], datetime] = None,
    ):
        self.session = session
        self.identity = identity
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def verify(self, token: str, ip_address: str = None, user_agent: str = None) -> AccessResult:
        token = str(token)
        now = self.clock()

        notification = await self._find_notification(token)
        if not notification:
            logging.warning(f"Access token not found: {token}")
            await audit_service.log_access_attempt(
                self.session, token_id=token, success=False,
                ip_address=ip_address, user_agent=user_agent, error_message="not_found",
            )
            return AccessResult(AccessOutcome.not_found)

        resident = notification.resident
        resident_id = resident.id
        occurrence_id = notification.occurrence_id
        notification_id = notification.id
        summary = resident_summary(resident)

        expires_at = _as_utc(notification.sent_at) + timedelta(days=config.ACCESS_TOKEN_TTL_DAYS)
        if now > expires_at:
            logging.info(f"Access token {token} expired at {expires_at}")
            await audit_service.log_access_attempt(
                self.session, token_id=token, success=False,
                resident_id=resident_id, occurrence_id=occurrence_id, user_id=resident.user_id,
                ip_address=ip_address, user_agent=user_agent, error_message="expired",
            )
            return AccessResult(AccessOutcome.expired, occurrence_id=occurrence_id)

        user_id = resident.user_id
        is_new_user = False
        redirect_url = None
        try:
            email = resident.email or placeholder_email(resident_id)
            if not user_id:
                user_id, is_new_user = await self._resolve_account(resident, email)

            await self._assign_resident_role(user_id)

            redirect_url = await self._redirect_url(occurrence_id)
            magic_link = await self.identity.generate_sign_in_link(email, redirect_url)
        except Exception as e:
            logging.exception(f"Access token {token} failed during identity resolution: {e}")
            await self.session.rollback()
            await audit_service.log_access_attempt(
                self.session, token_id=token, success=False,
                resident_id=resident_id, occurrence_id=occurrence_id, user_id=user_id,
                ip_address=ip_address, user_agent=user_agent, is_new_user=is_new_user,
                redirect_url=redirect_url, error_message=str(e),
            )
            await self.mark_read(notification_id, now, ip_address, user_agent)
            return AccessResult(AccessOutcome.internal_error, occurrence_id=occurrence_id)

        await audit_service.log_access_attempt(
            self.session, token_id=token, success=True,
            resident_id=resident_id, occurrence_id=occurrence_id, user_id=user_id,
            ip_address=ip_address, user_agent=user_agent, is_new_user=is_new_user,
            redirect_url=redirect_url,
        )
        logging.info(f"Magic link issued for resident {resident_id} (new user: {is_new_user})")

        result = AccessResult(
            AccessOutcome.success,
            magic_link=magic_link,
            resident=summary,
            occurrence_id=occurrence_id,
            is_new_user=is_new_user,
            redirect_url=redirect_url,
        )

        await self.mark_read(notification_id, now, ip_address, user_agent)
        return result

    async def _find_notification(self, token: str) -> Optional[NotificationSent]:
        stmt = (
            select(NotificationSent)
            .where(NotificationSent.secure_link_token == token)
            .options(
                selectinload(NotificationSent.resident)
                .selectinload(Resident.apartment)
                .selectinload(Apartment.block)
                .selectinload(Block.condominium)
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _resolve_account(self, resident: Resident, email: str):
        """
        Find or create the account for an unlinked resident and link it.

        Two first opens can race here: the loser gets AccountAlreadyExists
        and reuses the account by email, and the conditional update keeps
        whichever link was written first.
        """
        is_new_user = False
        try:
            account_id = await self.identity.create_account(
                email, {"full_name": resident.full_name, "resident_id": resident.id},
            )
            is_new_user = True
        except AccountAlreadyExists:
            logging.info(f"Account for {email} already exists, reusing it")
            account_id = await self.identity.find_account_by_email(email)
            if not account_id:
                raise

        await self.session.execute(
            update(Resident)
            .where(Resident.id == resident.id, Resident.user_id.is_(None))
            .values(user_id=account_id)
        )
        await self.session.commit()
        await self.session.refresh(resident, ["user_id"])

        if resident.user_id != account_id:
            logging.info(f"Resident {resident.id} was linked concurrently to {resident.user_id}")
            is_new_user = False
        return resident.user_id, is_new_user

    async def _assign_resident_role(self, user_id: str):
        stmt = select(UserRoleAssignment).where(UserRoleAssignment.user_id == user_id)
        result = await self.session.execute(stmt)
        assignment = result.scalar_one_or_none()

        if not assignment:
            self.session.add(UserRoleAssignment(user_id=user_id, role=AppRole.morador.value))
        elif assignment.role != AppRole.morador.value:
            if assignment.role in ELEVATED_ROLES and not config.RESIDENT_ROLE_OVERRIDE:
                logging.warning(f"Account {user_id} keeps role '{assignment.role}' on resident link access")
                return
            logging.warning(f"Account {user_id} role '{assignment.role}' replaced by 'morador'")
            assignment.role = AppRole.morador.value
        else:
            return
        await self.session.commit()

    async def _redirect_url(self, occurrence_id: Optional[str]) -> str:
        wa_config = await get_active_config(self.session)
        base_url = (wa_config.app_url if wa_config and wa_config.app_url else config.APP_BASE_URL).rstrip("/")
        return f"{base_url}/resident/occurrences/{occurrence_id}"

    async def mark_read(self, notification_id: int, now: datetime, ip_address: str = None, user_agent: str = None):
        """Best-effort read metadata; read_at keeps the first open"""
        try:
            notification = await self.session.get(NotificationSent, notification_id)
            if notification.read_at is None:
                notification.read_at = now
            notification.ip_address = ip_address
            notification.user_agent = user_agent
            await self.session.commit()
        except Exception as e:
            logging.warning(f"Failed to update read metadata for notification {notification_id}: {e}")
            await self.session.rollback()
