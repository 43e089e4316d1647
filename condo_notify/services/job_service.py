"""
Scheduled Job Service - pause control and execution logging
"""
import logging
import time
from typing import Optional, Iterable, Callable, Awaitable, Any, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from condo_notify.database.models import CronJobControl, JobExecutionLog, JobStatus, TriggerType, utcnow

MAX_STORED_ERRORS = 50


async def get_control(session: AsyncSession, function_name: str) -> Optional[CronJobControl]:
    return await session.get(CronJobControl, function_name)


async def is_paused(session: AsyncSession, function_name: str) -> bool:
    control = await get_control(session, function_name)
    return bool(control and control.paused)


async def set_paused(
    session: AsyncSession,
    function_name: str,
    paused: bool,
    paused_by: Optional[str] = None,
) -> CronJobControl:
    """Pause or resume a job (creates the control row on first use)"""
    control = await get_control(session, function_name)
    if not control:
        control = CronJobControl(function_name=function_name)
        session.add(control)

    control.paused = paused
    control.paused_at = utcnow() if paused else None
    control.paused_by = paused_by if paused else None
    await session.commit()

    logging.info(f"Job '{function_name}' {'paused' if paused else 'resumed'} by {paused_by or 'system'}")
    return control


async def list_controls(session: AsyncSession) -> List[CronJobControl]:
    result = await session.execute(select(CronJobControl).order_by(CronJobControl.function_name))
    return list(result.scalars().all())


async def run_job(
    session: AsyncSession,
    function_name: str,
    items: Iterable[Any],
    handler: Callable[[Any], Awaitable[Any]],
    trigger_type: str = TriggerType.scheduled.value,
) -> JobExecutionLog:
    """
    Run `handler` for every item unless the job is paused.

    One failing item never stops the batch: the final status is
    success, partial (some items failed) or error (every item failed).
    """
    log = JobExecutionLog(
        function_name=function_name,
        trigger_type=trigger_type,
        status=JobStatus.running.value,
        started_at=utcnow(),
    )

    if await is_paused(session, function_name):
        logging.info(f"Job '{function_name}' is paused, skipping")
        log.status = JobStatus.skipped.value
        log.finished_at = log.started_at
        log.duration_ms = 0
        log.result = {"skipped": True, "reason": "paused"}
        session.add(log)
        await session.commit()
        return log

    start = time.monotonic()
    total = 0
    success_count = 0
    errors = []

    for item in items:
        total += 1
        try:
            await handler(item)
            success_count += 1
        except Exception as e:
            logging.error(f"Job '{function_name}' failed on item {item!r}: {e}")
            errors.append({"item": str(item), "error": str(e)})
            # handlers commit their own work; drop whatever the failed item left pending
            await session.rollback()

    error_count = len(errors)
    if error_count == 0:
        log.status = JobStatus.success.value
    elif success_count > 0:
        log.status = JobStatus.partial.value
    else:
        log.status = JobStatus.error.value
        log.error_message = errors[0]["error"]

    log.finished_at = utcnow()
    log.duration_ms = int((time.monotonic() - start) * 1000)
    log.result = {
        "total": total,
        "successCount": success_count,
        "errorCount": error_count,
        "errors": errors[:MAX_STORED_ERRORS],
    }
    session.add(log)
    await session.commit()

    logging.info(
        f"Job '{function_name}' finished: {log.status} "
        f"({success_count}/{total} ok, {log.duration_ms}ms)"
    )
    return log


async def list_executions(session: AsyncSession, function_name: str = None, limit: int = 50) -> List[JobExecutionLog]:
    stmt = select(JobExecutionLog)
    if function_name:
        stmt = stmt.where(JobExecutionLog.function_name == function_name)
    stmt = stmt.order_by(JobExecutionLog.started_at.desc(), JobExecutionLog.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
