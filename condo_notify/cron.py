import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Dict, List
from zoneinfo import ZoneInfo
from sqlalchemy import delete, select, func, update
from sqlalchemy.orm import selectinload
from condo_notify.config import config
from condo_notify.database.core import AsyncSessionLocal
from condo_notify.database.models import (
    WhatsAppNotificationLog, MagicLinkAccessLog, JobExecutionLog, JobStatus, TriggerType,
    PartyHallBooking, BookingStatus, utcnow,
)
from condo_notify.services.dispatch_service import MessageDispatcher
from condo_notify.services.job_service import run_job

PURGE_JOB_NAME = "cleanup-old-logs"

# (label, model, timestamp column) for every append-only table with a retention window
RETENTION_TARGETS = [
    ("whatsapp_notification_logs", WhatsAppNotificationLog, WhatsAppNotificationLog.created_at),
    ("magic_link_access_logs", MagicLinkAccessLog, MagicLinkAccessLog.access_at),
    ("edge_function_logs", JobExecutionLog, JobExecutionLog.started_at),
]


async def purge_old_logs_job(
    session=None,
    retention_days: int = None,
    dry_run: bool = False,
    trigger_type: str = TriggerType.scheduled.value,
) -> JobExecutionLog:
    """
    Delete audit rows older than the retention window.

    With dry_run the rows are only counted. Each table is a separate unit
    of work, so one failing delete does not stop the others.
    """
    retention_days = retention_days or config.LOG_RETENTION_DAYS
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    logging.info(f"Running log cleanup (retention {retention_days}d, cutoff {cutoff:%Y-%m-%d}, dry_run={dry_run})")

    async def _run(db):
        counts = {}

        async def purge_table(target):
            label, model, column = target
            if dry_run:
                result = await db.execute(select(func.count()).select_from(model).where(column < cutoff))
                counts[label] = result.scalar() or 0
                return
            result = await db.execute(delete(model).where(column < cutoff))
            await db.commit()
            counts[label] = result.rowcount or 0

        log = await run_job(db, PURGE_JOB_NAME, RETENTION_TARGETS, purge_table, trigger_type)
        if log.status != JobStatus.skipped.value:
            log.result = {**(log.result or {}), "counts": counts, "dryRun": dry_run}
            await db.commit()
            logging.info(f"Log cleanup counts: {counts}")
        return log

    if session is not None:
        return await _run(session)

    async with AsyncSessionLocal() as session:
        return await _run(session)


REMINDER_JOB_NAME = "notify-party-hall-reminders"
REMINDER_TEMPLATE = "party_hall_reminder"

WEEKDAYS_PT = ["segunda-feira", "terça-feira", "quarta-feira", "quinta-feira", "sexta-feira", "sábado", "domingo"]
MONTHS_PT = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]


def format_date_pt(value: date) -> str:
    """e.g. 'sábado, 07 de março de 2026'"""
    return f"{WEEKDAYS_PT[value.weekday()]}, {value.day:02d} de {MONTHS_PT[value.month - 1]} de {value.year}"


def local_today() -> date:
    return datetime.now(ZoneInfo(config.TIMEZONE)).date()


@dataclass
class ReminderItem:
    """Plain snapshot of a booking, readable after a failed item rolled the session back"""
    booking_id: int
    condominium_id: int
    resident_id: int
    phone: Optional[str]
    variables: Dict[str, str]

    def __str__(self):
        return f"booking {self.booking_id}"


async def pending_reminders(session, day: date) -> List[ReminderItem]:
    """Confirmed bookings on `day` that were not reminded yet"""
    stmt = (
        select(PartyHallBooking)
        .where(
            PartyHallBooking.booking_date == day,
            PartyHallBooking.status == BookingStatus.confirmada.value,
            PartyHallBooking.notification_sent_at.is_(None),
        )
        .options(selectinload(PartyHallBooking.resident), selectinload(PartyHallBooking.condominium))
        .order_by(PartyHallBooking.start_time, PartyHallBooking.id)
    )
    result = await session.execute(stmt)

    items = []
    for booking in result.scalars().all():
        first_name = (booking.resident.full_name or "").split(" ")[0]
        items.append(ReminderItem(
            booking_id=booking.id,
            condominium_id=booking.condominium_id,
            resident_id=booking.resident_id,
            phone=booking.resident.phone,
            variables={
                "condominio": booking.condominium.name,
                "nome": first_name,
                "espaco": booking.hall_name,
                "data": format_date_pt(booking.booking_date),
                "horario_inicio": booking.start_time.strftime("%H:%M"),
                "horario_fim": booking.end_time.strftime("%H:%M"),
                "checklist": "",
            },
        ))
    return items


async def party_hall_reminders_job(
    session=None,
    dry_run: bool = False,
    trigger_type: str = TriggerType.scheduled.value,
    target_date: date = None,
    dispatcher_factory=MessageDispatcher,
) -> JobExecutionLog:
    """
    WhatsApp reminder for every confirmed party hall booking of tomorrow.

    A booking is marked as notified only after a successful send, so a
    failed reminder is retried on the next run. With dry_run nothing is sent.
    """

    async def _run(db):
        day = target_date or local_today() + timedelta(days=1)
        items = await pending_reminders(db, day)
        logging.info(f"Party hall reminders for {day}: {len(items)} booking(s), dry_run={dry_run}")
        dispatcher = dispatcher_factory(db)

        async def send_reminder(item: ReminderItem):
            if not item.phone:
                raise ValueError("No phone number")
            if dry_run:
                return
            attempt = await dispatcher.dispatch(
                REMINDER_TEMPLATE,
                item.phone,
                item.variables,
                function_name=REMINDER_JOB_NAME,
                condominium_id=item.condominium_id,
                resident_id=item.resident_id,
            )
            if not attempt.success:
                raise RuntimeError(attempt.error_message or "send failed")
            await db.execute(
                update(PartyHallBooking)
                .where(PartyHallBooking.id == item.booking_id)
                .values(notification_sent_at=utcnow())
            )
            await db.commit()

        log = await run_job(db, REMINDER_JOB_NAME, items, send_reminder, trigger_type)
        if log.status != JobStatus.skipped.value:
            log.result = {**(log.result or {}), "date": day.isoformat(), "dryRun": dry_run}
            await db.commit()
        return log

    if session is not None:
        return await _run(session)

    async with AsyncSessionLocal() as session:
        return await _run(session)


SCHEDULED_JOBS = {
    REMINDER_JOB_NAME: party_hall_reminders_job,
    PURGE_JOB_NAME: purge_old_logs_job,
}


async def scheduler_loop():
    """Run scheduled jobs once a day at SCHEDULER_HOUR."""
    logging.info("Scheduler started.")

    # Initial delay to settle startup
    await asyncio.sleep(10)

    while True:
        try:
            now = datetime.now()
            today_target = now.replace(hour=config.SCHEDULER_HOUR, minute=0, second=0, microsecond=0)

            if now < today_target:
                next_run = today_target
            else:
                next_run = today_target + timedelta(days=1)

            wait_seconds = (next_run - now).total_seconds()
            logging.info(f"Next scheduler run at {next_run} (in {wait_seconds/3600:.1f}h)")

            await asyncio.sleep(wait_seconds)

            for name, job in SCHEDULED_JOBS.items():
                try:
                    await job()
                except Exception as e:
                    logging.error(f"Scheduled job '{name}' crashed: {e}")

            # Buffer to skip current minute
            await asyncio.sleep(60)

        except asyncio.CancelledError:
            logging.info("Scheduler stopped.")
            raise
        except Exception as e:
            logging.error(f"Error in scheduler loop: {e}")
            await asyncio.sleep(60)  # Prevent tight loop on error
