import enum
from datetime import datetime, date, time, timezone
from typing import Optional, List
from sqlalchemy import String, Boolean, ForeignKey, Integer, DateTime, Date, Time, JSON, Text, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from condo_notify.database.core import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class WhatsAppProviderName(str, enum.Enum):
    zpro = "zpro"
    zapi = "zapi"
    evolution = "evolution"
    wppconnect = "wppconnect"

class DeliveryStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    read = "read"
    failed = "failed"

class AppRole(str, enum.Enum):
    super_admin = "super_admin"
    sindico = "sindico"
    porteiro = "porteiro"
    morador = "morador"

class JobStatus(str, enum.Enum):
    running = "running"
    success = "success"
    partial = "partial"
    error = "error"
    skipped = "skipped"

class TriggerType(str, enum.Enum):
    manual = "manual"
    scheduled = "scheduled"

class BookingStatus(str, enum.Enum):
    pendente = "pendente"
    confirmada = "confirmada"
    cancelada = "cancelada"
    concluida = "concluida"


# 1. Condominium structure (read-only for this service)
class Condominium(Base):
    __tablename__ = "condominiums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    blocks: Mapped[List["Block"]] = relationship(back_populates="condominium")


class Block(Base):
    __tablename__ = "blocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    condominium_id: Mapped[int] = mapped_column(ForeignKey("condominiums.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String)

    condominium: Mapped["Condominium"] = relationship(back_populates="blocks")
    apartments: Mapped[List["Apartment"]] = relationship(back_populates="block")


class Apartment(Base):
    __tablename__ = "apartments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    block_id: Mapped[int] = mapped_column(ForeignKey("blocks.id", ondelete="CASCADE"))
    number: Mapped[str] = mapped_column(String)

    block: Mapped["Block"] = relationship(back_populates="apartments")
    residents: Mapped[List["Resident"]] = relationship(back_populates="apartment")


class Resident(Base):
    __tablename__ = "residents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    apartment_id: Mapped[int] = mapped_column(ForeignKey("apartments.id", ondelete="CASCADE"))
    full_name: Mapped[str] = mapped_column(String)
    email: Mapped[Optional[str]] = mapped_column(String)
    phone: Mapped[Optional[str]] = mapped_column(String)
    # Identity provider account; set once by the access flow, never cleared
    user_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, index=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    apartment: Mapped["Apartment"] = relationship(back_populates="residents")
    notifications: Mapped[List["NotificationSent"]] = relationship(back_populates="resident")


# 2. Notifications with secure access links
class NotificationSent(Base):
    __tablename__ = "notifications_sent"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    resident_id: Mapped[int] = mapped_column(ForeignKey("residents.id", ondelete="CASCADE"))
    occurrence_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    message_content: Mapped[Optional[str]] = mapped_column(Text)
    sent_via: Mapped[str] = mapped_column(String, default="whatsapp")
    secure_link: Mapped[Optional[str]] = mapped_column(String)
    secure_link_token: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Provider delivery tracking (updated by status webhooks)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String, index=True)
    delivery_status: Mapped[Optional[str]] = mapped_column(String)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Set when the resident opens the link
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ip_address: Mapped[Optional[str]] = mapped_column(String)
    user_agent: Mapped[Optional[str]] = mapped_column(String)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    resident: Mapped["Resident"] = relationship(back_populates="notifications")


# 3. WhatsApp provider configuration (one active row consulted)
class WhatsAppConfig(Base):
    __tablename__ = "whatsapp_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    provider: Mapped[WhatsAppProviderName] = mapped_column(String, default=WhatsAppProviderName.zpro.value)
    api_url: Mapped[str] = mapped_column(String)
    api_key: Mapped[str] = mapped_column(String)
    instance_id: Mapped[Optional[str]] = mapped_column(String)
    app_url: Mapped[Optional[str]] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# 4. Message templates
class WhatsAppTemplate(Base):
    __tablename__ = "whatsapp_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(Text)
    content: Mapped[str] = mapped_column(Text)
    variables: Mapped[List[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CondominiumTemplate(Base):
    __tablename__ = "condominium_whatsapp_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    condominium_id: Mapped[int] = mapped_column(ForeignKey("condominiums.id", ondelete="CASCADE"))
    template_slug: Mapped[str] = mapped_column(String)
    content: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('condominium_id', 'template_slug', name='uq_condominium_template_slug'),
    )


# Party hall bookings (managed by the web app; this service only sends reminders)
class PartyHallBooking(Base):
    __tablename__ = "party_hall_bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    condominium_id: Mapped[int] = mapped_column(ForeignKey("condominiums.id", ondelete="CASCADE"))
    resident_id: Mapped[int] = mapped_column(ForeignKey("residents.id", ondelete="CASCADE"))
    hall_name: Mapped[str] = mapped_column(String)
    booking_date: Mapped[date] = mapped_column(Date)
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    status: Mapped[BookingStatus] = mapped_column(String, default=BookingStatus.pendente.value)
    notification_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    condominium: Mapped["Condominium"] = relationship()
    resident: Mapped["Resident"] = relationship()

    __table_args__ = (
        Index("ix_party_hall_bookings_date_status", "booking_date", "status"),
    )


# 5. Audit logs (append-only)
class WhatsAppNotificationLog(Base):
    __tablename__ = "whatsapp_notification_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    function_name: Mapped[str] = mapped_column(String)
    resident_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String)

    template_name: Mapped[Optional[str]] = mapped_column(String)
    template_language: Mapped[Optional[str]] = mapped_column(String)

    request_payload: Mapped[Optional[dict]] = mapped_column(JSON)
    response_status: Mapped[Optional[int]] = mapped_column(Integer)
    response_body: Mapped[Optional[str]] = mapped_column(Text)

    success: Mapped[bool] = mapped_column(Boolean, default=False)
    message_id: Mapped[Optional[str]] = mapped_column(String)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    debug_info: Mapped[Optional[dict]] = mapped_column(JSON)

    __table_args__ = (
        Index('ix_whatsapp_logs_created_at', 'created_at'),
    )


class MagicLinkAccessLog(Base):
    __tablename__ = "magic_link_access_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    token_id: Mapped[str] = mapped_column(String(64), index=True)
    resident_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    occurrence_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String)
    user_agent: Mapped[Optional[str]] = mapped_column(String)
    access_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    is_new_user: Mapped[bool] = mapped_column(Boolean, default=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    redirect_url: Mapped[Optional[str]] = mapped_column(String)


# 6. Roles (one role per identity account)
class UserRoleAssignment(Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    role: Mapped[AppRole] = mapped_column(String, default=AppRole.morador.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# 7. Scheduled jobs
class CronJobControl(Base):
    __tablename__ = "cron_job_controls"

    function_name: Mapped[str] = mapped_column(String, primary_key=True)
    paused: Mapped[bool] = mapped_column(Boolean, default=False)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    paused_by: Mapped[Optional[str]] = mapped_column(String)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class JobExecutionLog(Base):
    __tablename__ = "edge_function_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    function_name: Mapped[str] = mapped_column(String, index=True)
    trigger_type: Mapped[TriggerType] = mapped_column(String, default=TriggerType.manual.value)
    status: Mapped[JobStatus] = mapped_column(String, default=JobStatus.running.value)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    result: Mapped[Optional[dict]] = mapped_column(JSON)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
