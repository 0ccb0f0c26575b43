"""SLA breach notifier: sweeps tenants and fires threshold notifications.

Every open ticket carrying an active SLA is checked against the near,
breached and past-breach thresholds of its current phase. At most one
notification fires per ticket per sweep and only when the sentinel for
that threshold is still empty, so repeated sweeps are idempotent.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sla_engine.core.clock import utcnow
from sla_engine.core.config import settings
from sla_engine.core.exceptions import SLAEngineException, TenantTimeoutError
from sla_engine.db.session import TenantSessionProvider, get_provider
from sla_engine.models.enums import TERMINAL_TICKET_STATUSES, BreachSeverity, SLAPhase
from sla_engine.models.sla import SLADefinition
from sla_engine.models.ticket import Ticket
from sla_engine.services.notifications_service import build_sla_payload, record_sla_notification
from sla_engine.services.sla.business_hours import profile_for_sla
from sla_engine.services.sla.state import phase_percent
from sla_engine.services.tenants import get_sla_check_interval, list_active_tenant_codes

logger = logging.getLogger(__name__)

BREACHED_PERCENT = 100


@dataclass(frozen=True)
class NotificationKind:
    phase: SLAPhase
    level: BreachSeverity
    type: str
    severity: str
    sentinel: str
    label: str


def _kind(phase: SLAPhase, level: BreachSeverity, severity: str, label: str) -> NotificationKind:
    return NotificationKind(
        phase=phase,
        level=level,
        type=f"SLA_{phase.value.upper()}_{level.value.upper()}",
        severity=severity,
        sentinel=f"notified_{phase.value}_{level.value}_at",
        label=label,
    )


NOTIFICATION_KINDS: dict[tuple[SLAPhase, BreachSeverity], NotificationKind] = {
    (phase, level): _kind(phase, level, severity, label)
    for phase in SLAPhase
    for level, severity, label in (
        (BreachSeverity.near, "warning", "near breach"),
        (BreachSeverity.breached, "critical", "breached"),
        (BreachSeverity.past, "critical", "past breach"),
    )
}

_PHASE_LABELS = {SLAPhase.response: "response", SLAPhase.resolve: "resolution"}


def reached_levels(percent: int, near_percent: int, past_percent: int) -> list[BreachSeverity]:
    """Thresholds reached by ``percent``, most severe first."""
    levels = []
    if percent >= past_percent:
        levels.append(BreachSeverity.past)
    if percent >= BREACHED_PERCENT:
        levels.append(BreachSeverity.breached)
    if percent >= near_percent:
        levels.append(BreachSeverity.near)
    return levels


def notification_message(kind: NotificationKind, ticket_id: int, percent: int) -> str:
    return f"SLA {_PHASE_LABELS[kind.phase]} {kind.label} for Ticket #{ticket_id} ({percent}%)"


class TenantCadence:
    """Last-processed bookkeeping for daemon mode; lives as long as the notifier."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._last_processed: dict[str, float] = {}

    def is_due(self, tenant_code: str, interval_seconds: float) -> bool:
        last = self._last_processed.get(tenant_code)
        if last is None:
            return True
        return self._clock() - last >= interval_seconds

    def mark(self, tenant_code: str) -> None:
        self._last_processed[tenant_code] = self._clock()


@dataclass
class SweepStats:
    tenants_seen: int = 0
    tenants_processed: int = 0
    tenants_skipped: int = 0
    tickets_checked: int = 0
    notifications_sent: int = 0
    errors: int = 0
    elapsed_seconds: float = 0.0
    failed_tenants: list[str] = field(default_factory=list)


@dataclass
class TenantSweep:
    tickets: int = 0
    notifications: int = 0


class BreachNotifier:
    def __init__(
        self,
        *,
        provider: TenantSessionProvider | None = None,
        cadence: TenantCadence | None = None,
        tenant_lister: Callable[[], list[str]] | None = None,
        tenant_timeout_seconds: float | None = None,
        tick_seconds: float | None = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._provider = provider or get_provider()
        self._cadence = cadence or TenantCadence()
        self._tenant_lister = tenant_lister or (lambda: list_active_tenant_codes(self._provider))
        self._tenant_timeout = float(tenant_timeout_seconds or settings.SLA_TENANT_TIMEOUT_SECONDS)
        self._tick_seconds = float(tick_seconds or settings.SLA_CHECK_INTERVAL_SECONDS)
        self._clock = clock
        self._shutdown = False
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._cycle_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    def request_shutdown(self) -> None:
        if not self._shutdown:
            logger.info("SLA notifier shutdown requested")
        self._shutdown = True
        if self._stop_event is not None:
            self._stop_event.set()

    def close(self) -> None:
        self._provider.dispose_all()

    # ---- per ticket ---------------------------------------------------

    def check_ticket(
        self,
        db: Session,
        tenant_code: str,
        ticket: Ticket,
        sla: SLADefinition,
        now: dt.datetime,
    ) -> NotificationKind | None:
        if ticket.first_responded_at is None:
            phase = SLAPhase.response
            started_at, due_at = ticket.created_at, ticket.response_due_at
        elif ticket.resolved_at is None:
            phase = SLAPhase.resolve
            started_at, due_at = ticket.first_responded_at, ticket.resolve_due_at
        else:
            return None
        if started_at is None or due_at is None:
            return None

        percent = phase_percent(started_at, due_at, now, profile_for_sla(sla))
        levels = reached_levels(
            percent,
            sla.near_breach_percent or settings.SLA_DEFAULT_NEAR_BREACH_PERCENT,
            sla.past_breach_percent or settings.SLA_DEFAULT_PAST_BREACH_PERCENT,
        )
        # Levels skipped by a jump still fire, one per sweep, until every sentinel is set.
        for level in levels:
            kind = NOTIFICATION_KINDS[(phase, level)]
            if getattr(ticket, kind.sentinel) is None:
                break
        else:
            return None

        record_sla_notification(
            db,
            ticket=ticket,
            notification_type=kind.type,
            severity=kind.severity,
            message=notification_message(kind, ticket.id, percent),
            payload=build_sla_payload(
                tenant_code=tenant_code,
                ticket_id=ticket.id,
                percent_used=percent,
                due_at=due_at,
                sla_name=sla.name,
                phase=phase.value,
            ),
            sentinel=kind.sentinel,
            now=now,
        )
        return kind

    # ---- per tenant ---------------------------------------------------

    async def process_tenant(self, tenant_code: str) -> TenantSweep:
        """Sweep one tenant in a worker thread so the tenant timeout can fire during blocking I/O."""
        abort = threading.Event()
        try:
            return await asyncio.to_thread(self.sweep_tenant, tenant_code, abort)
        except asyncio.CancelledError:
            # The thread cannot be interrupted; it stops at the next ticket boundary.
            abort.set()
            raise

    def sweep_tenant(self, tenant_code: str, abort: threading.Event | None = None) -> TenantSweep:
        result = TenantSweep()
        with self._provider.tenant_session(tenant_code) as db:
            rows = (
                db.query(Ticket, SLADefinition)
                .join(SLADefinition, Ticket.sla_definition_id == SLADefinition.id)
                .filter(
                    SLADefinition.is_active.is_(True),
                    Ticket.status.not_in(list(TERMINAL_TICKET_STATUSES)),
                    Ticket.resolved_at.is_(None),
                )
                .order_by(Ticket.id.asc())
                .all()
            )
            for ticket, sla in rows:
                if self._shutdown or (abort is not None and abort.is_set()):
                    break
                result.tickets += 1
                ticket_id = ticket.id
                try:
                    kind = self.check_ticket(db, tenant_code, ticket, sla, self._clock())
                    if kind is not None:
                        db.commit()
                        result.notifications += 1
                        logger.info(
                            "SLA notification tenant=%s ticket=%s type=%s",
                            tenant_code,
                            ticket_id,
                            kind.type,
                        )
                except SQLAlchemyError as exc:
                    db.rollback()
                    logger.error("SLA notification failed tenant=%s ticket=%s: %s", tenant_code, ticket_id, exc)
        return result

    async def _tenant_interval(self, tenant_code: str) -> int:
        try:
            return await asyncio.to_thread(self._read_tenant_interval, tenant_code)
        except (SLAEngineException, SQLAlchemyError) as exc:
            logger.warning("Using default SLA interval tenant=%s: %s", tenant_code, exc)
            return settings.SLA_DEFAULT_TENANT_INTERVAL_SECONDS

    def _read_tenant_interval(self, tenant_code: str) -> int:
        with self._provider.tenant_session(tenant_code) as db:
            return get_sla_check_interval(db)

    async def _sweep(self, *, honor_cadence: bool, strict: bool = False) -> SweepStats | None:
        if self._running:
            logger.warning("SLA sweep still running; skipping this tick")
            return None
        self._running = True
        stats = SweepStats()
        started = time.monotonic()
        try:
            try:
                tenant_codes = self._tenant_lister()
            except (SLAEngineException, SQLAlchemyError) as exc:
                logger.error("Could not list tenants: %s", exc)
                if strict:
                    raise
                stats.errors += 1
                return stats

            for tenant_code in tenant_codes:
                stats.tenants_seen += 1
                if self._shutdown:
                    stats.tenants_skipped += 1
                    continue
                if honor_cadence:
                    interval = await self._tenant_interval(tenant_code)
                    if not self._cadence.is_due(tenant_code, interval):
                        stats.tenants_skipped += 1
                        continue
                try:
                    result = await asyncio.wait_for(self.process_tenant(tenant_code), timeout=self._tenant_timeout)
                except asyncio.TimeoutError:
                    stats.errors += 1
                    stats.failed_tenants.append(tenant_code)
                    logger.error("%s", TenantTimeoutError(tenant_code, self._tenant_timeout).message)
                    continue
                except Exception as exc:  # noqa: BLE001
                    stats.errors += 1
                    stats.failed_tenants.append(tenant_code)
                    logger.error("SLA sweep failed tenant=%s: %s", tenant_code, exc)
                    continue

                stats.tenants_processed += 1
                stats.tickets_checked += result.tickets
                stats.notifications_sent += result.notifications
                self._cadence.mark(tenant_code)
                if result.notifications:
                    logger.info(
                        "SLA sweep tenant=%s tickets=%s notifications=%s",
                        tenant_code,
                        result.tickets,
                        result.notifications,
                    )
        finally:
            stats.elapsed_seconds = round(time.monotonic() - started, 3)
            self._running = False

        logger.info(
            "SLA sweep done: tenants=%s processed=%s skipped=%s tickets=%s notifications=%s errors=%s elapsed=%.2fs",
            stats.tenants_seen,
            stats.tenants_processed,
            stats.tenants_skipped,
            stats.tickets_checked,
            stats.notifications_sent,
            stats.errors,
            stats.elapsed_seconds,
        )
        return stats

    async def run_once(self) -> SweepStats | None:
        """Sweep every active tenant once, ignoring per-tenant cadence.

        Unlike daemon cycles, a failure to list tenants propagates.
        """
        return await self._sweep(honor_cadence=False, strict=True)

    async def run_cycle(self) -> SweepStats | None:
        """One daemon tick: only tenants whose own interval has elapsed."""
        return await self._sweep(honor_cadence=True)

    async def run_daemon(self) -> None:
        self._stop_event = asyncio.Event()
        if self._shutdown:
            self._stop_event.set()
        logger.info("SLA notifier daemon started (tick every %s seconds)", self._tick_seconds)
        try:
            while not self._shutdown:
                if self._cycle_task is None or self._cycle_task.done():
                    self._cycle_task = asyncio.create_task(self.run_cycle(), name="sla-breach-cycle")
                else:
                    logger.warning("Previous SLA cycle still running; skipping tick")
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_seconds)
                except asyncio.TimeoutError:
                    pass
            if self._cycle_task is not None:
                await self._cycle_task
        finally:
            self._cycle_task = None
            self._stop_event = None
            self.close()
            logger.info("SLA notifier daemon stopped")
