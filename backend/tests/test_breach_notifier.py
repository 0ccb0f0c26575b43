from __future__ import annotations

import asyncio
import datetime as dt
import threading
import time
from types import SimpleNamespace

import pytest

from sla_engine.core.exceptions import TenantConnectionError
from sla_engine.models.enums import BreachSeverity, SLAPhase, TenantStatus, TicketStatus
from sla_engine.models.notification import Notification
from sla_engine.models.sla import SLADefinition
from sla_engine.models.tenant import Tenant, TenantSetting
from sla_engine.models.ticket import Ticket
from sla_engine.services.sla.breach_notifier import (
    NOTIFICATION_KINDS,
    BreachNotifier,
    TenantCadence,
    TenantSweep,
    reached_levels,
)
from sla_engine.services.tenants import get_sla_check_interval

TENANT = "acme"
UTC = dt.timezone.utc
NOW = dt.datetime(2024, 3, 4, 12, 0, tzinfo=UTC)


def _ago(minutes: int) -> dt.datetime:
    return NOW - dt.timedelta(minutes=minutes)


def _ahead(minutes: int) -> dt.datetime:
    return NOW + dt.timedelta(minutes=minutes)


@pytest.fixture()
def seeded(tenant_db):
    tenant_db.add(
        SLADefinition(
            id=1,
            name="Standard",
            response_target_minutes=100,
            resolve_target_minutes=100,
            near_breach_percent=85,
            past_breach_percent=120,
        )
    )
    tenant_db.add_all(
        [
            # 90% of the response window used.
            Ticket(id=1, title="near", sla_definition_id=1, created_at=_ago(90), response_due_at=_ahead(10)),
            # 130% used: only the most severe notification fires.
            Ticket(id=2, title="past", sla_definition_id=1, created_at=_ago(130), response_due_at=_ago(30)),
            # Resolve phase at 105%.
            Ticket(
                id=3,
                title="resolve breached",
                sla_definition_id=1,
                created_at=_ago(300),
                response_due_at=_ago(200),
                first_responded_at=_ago(105),
                resolve_due_at=_ago(5),
            ),
            Ticket(
                id=4,
                title="closed",
                status=TicketStatus.closed,
                sla_definition_id=1,
                created_at=_ago(500),
                response_due_at=_ago(400),
            ),
            Ticket(id=5, title="on track", sla_definition_id=1, created_at=_ago(10), response_due_at=_ahead(90)),
            Ticket(id=6, title="no sla", created_at=_ago(500)),
        ]
    )
    tenant_db.commit()
    return tenant_db


def _notifier(provider, **kwargs) -> BreachNotifier:
    kwargs.setdefault("tenant_lister", lambda: [TENANT])
    return BreachNotifier(provider=provider, clock=lambda: NOW, **kwargs)


def test_threshold_levels_are_most_severe_first() -> None:
    assert reached_levels(84, 85, 120) == []
    assert reached_levels(85, 85, 120) == [BreachSeverity.near]
    assert reached_levels(100, 85, 120) == [BreachSeverity.breached, BreachSeverity.near]
    assert reached_levels(120, 85, 120) == [BreachSeverity.past, BreachSeverity.breached, BreachSeverity.near]


def test_notification_kind_table() -> None:
    assert len(NOTIFICATION_KINDS) == 6
    near = NOTIFICATION_KINDS[(SLAPhase.response, BreachSeverity.near)]
    assert (near.type, near.severity, near.sentinel) == ("SLA_RESPONSE_NEAR", "warning", "notified_response_near_at")
    past = NOTIFICATION_KINDS[(SLAPhase.resolve, BreachSeverity.past)]
    assert (past.type, past.severity, past.sentinel) == ("SLA_RESOLVE_PAST", "critical", "notified_resolve_past_at")


def test_sweep_fires_one_notification_per_ticket_and_is_idempotent(provider, seeded) -> None:
    notifier = _notifier(provider)

    first = asyncio.run(notifier.run_once())
    assert first.tenants_processed == 1
    assert first.tickets_checked == 4
    assert first.notifications_sent == 3
    assert first.errors == 0

    seeded.expire_all()
    rows = seeded.query(Notification).order_by(Notification.ticket_id.asc()).all()
    assert [(row.ticket_id, row.type, row.severity) for row in rows] == [
        (1, "SLA_RESPONSE_NEAR", "warning"),
        (2, "SLA_RESPONSE_PAST", "critical"),
        (3, "SLA_RESOLVE_BREACHED", "critical"),
    ]
    assert rows[0].message == "SLA response near breach for Ticket #1 (90%)"
    assert rows[2].message == "SLA resolution breached for Ticket #3 (105%)"
    assert rows[1].payload["tenantCode"] == TENANT
    assert rows[1].payload["percentUsed"] == 130
    assert rows[1].payload["phase"] == "response"
    assert rows[1].payload["slaName"] == "Standard"

    past = seeded.get(Ticket, 2)
    assert past.notified_response_past_at is not None
    assert past.notified_response_breached_at is None
    assert past.notified_response_near_at is None

    # Skipped levels catch up one per sweep, then nothing more fires.
    assert [asyncio.run(notifier.run_once()).notifications_sent for _ in range(3)] == [2, 1, 0]

    seeded.expire_all()
    jumped = seeded.query(Notification.type).filter(Notification.ticket_id == 2).order_by(Notification.id.asc())
    assert [row[0] for row in jumped] == ["SLA_RESPONSE_PAST", "SLA_RESPONSE_BREACHED", "SLA_RESPONSE_NEAR"]
    resolve = seeded.query(Notification.type).filter(Notification.ticket_id == 3).order_by(Notification.id.asc())
    assert [row[0] for row in resolve] == ["SLA_RESOLVE_BREACHED", "SLA_RESOLVE_NEAR"]
    assert seeded.query(Notification).count() == 6


def test_later_crossing_fires_next_level(provider, seeded) -> None:
    asyncio.run(_notifier(provider).run_once())

    later = NOW + dt.timedelta(minutes=20)
    notifier = BreachNotifier(provider=provider, tenant_lister=lambda: [TENANT], clock=lambda: later)
    stats = asyncio.run(notifier.run_once())

    seeded.expire_all()
    types = {row.type for row in seeded.query(Notification).filter(Notification.ticket_id == 1).all()}
    assert types == {"SLA_RESPONSE_NEAR", "SLA_RESPONSE_BREACHED"}
    assert stats.notifications_sent >= 1


class _ScriptedNotifier(BreachNotifier):
    def __init__(self, behaviours, **kwargs) -> None:
        kwargs.setdefault("provider", SimpleNamespace(dispose_all=lambda: None))
        super().__init__(tenant_lister=lambda: list(behaviours), **kwargs)
        self.behaviours = behaviours
        self.calls: list[str] = []

    async def process_tenant(self, tenant_code: str) -> TenantSweep:
        self.calls.append(tenant_code)
        return await self.behaviours[tenant_code]()


async def _ok() -> TenantSweep:
    return TenantSweep(tickets=2, notifications=1)


async def _slow() -> TenantSweep:
    await asyncio.sleep(5)
    return TenantSweep()


async def _broken() -> TenantSweep:
    raise TenantConnectionError("broken")


def test_timeout_and_errors_skip_only_that_tenant() -> None:
    notifier = _ScriptedNotifier({"slow": _slow, "broken": _broken, "fine": _ok}, tenant_timeout_seconds=0.05)

    stats = asyncio.run(notifier.run_once())

    assert notifier.calls == ["slow", "broken", "fine"]
    assert stats.tenants_seen == 3
    assert stats.tenants_processed == 1
    assert stats.errors == 2
    assert stats.failed_tenants == ["slow", "broken"]
    assert stats.notifications_sent == 1


def test_shutdown_stops_before_next_tenant() -> None:
    notifier = _ScriptedNotifier({"a": _ok, "b": _ok})
    notifier.request_shutdown()

    stats = asyncio.run(notifier.run_once())

    assert notifier.calls == []
    assert stats.tenants_skipped == 2


def test_overlapping_sweep_is_skipped() -> None:
    async def scenario():
        gate = asyncio.Event()

        async def blocked() -> TenantSweep:
            await gate.wait()
            return TenantSweep(tickets=1)

        notifier = _ScriptedNotifier({"a": blocked})
        first = asyncio.create_task(notifier.run_once())
        await asyncio.sleep(0)
        assert notifier.running
        second = await notifier.run_once()
        gate.set()
        done = await first
        assert not notifier.running
        return done, second

    first, second = asyncio.run(scenario())
    assert second is None
    assert first.tenants_processed == 1


def test_cadence_tracks_per_tenant_intervals() -> None:
    now = [1000.0]
    cadence = TenantCadence(clock=lambda: now[0])
    assert cadence.is_due("acme", 300)
    cadence.mark("acme")
    now[0] += 299
    assert not cadence.is_due("acme", 300)
    assert cadence.is_due("other", 300)
    now[0] += 1
    assert cadence.is_due("acme", 300)


def test_daemon_cycle_honors_tenant_interval(provider) -> None:
    now = [0.0]
    cadence = TenantCadence(clock=lambda: now[0])
    notifier = _ScriptedNotifier({TENANT: _ok}, provider=provider, cadence=cadence)

    first = asyncio.run(notifier.run_cycle())
    second = asyncio.run(notifier.run_cycle())
    now[0] += 300
    third = asyncio.run(notifier.run_cycle())

    assert (first.tenants_processed, first.tenants_skipped) == (1, 0)
    assert (second.tenants_processed, second.tenants_skipped) == (0, 1)
    assert third.tenants_processed == 1


def test_tenant_interval_setting(tenant_db) -> None:
    assert get_sla_check_interval(tenant_db) == 300
    setting = TenantSetting(setting_key="sla_check_interval_seconds", setting_value="120")
    tenant_db.add(setting)
    tenant_db.commit()
    assert get_sla_check_interval(tenant_db) == 120
    setting.setting_value = "30"
    tenant_db.commit()
    assert get_sla_check_interval(tenant_db) == 300
    setting.setting_value = "soon"
    tenant_db.commit()
    assert get_sla_check_interval(tenant_db) == 300


def test_daemon_runs_until_shutdown_and_disposes_connections() -> None:
    disposed = []
    provider = SimpleNamespace(
        dispose_all=lambda: disposed.append(True),
        tenant_session=lambda code: (_ for _ in ()).throw(TenantConnectionError(code)),
    )

    async def scenario():
        notifier = _ScriptedNotifier({"a": _ok}, provider=provider, tick_seconds=0.01)
        task = asyncio.create_task(notifier.run_daemon())
        await asyncio.sleep(0.05)
        notifier.request_shutdown()
        await asyncio.wait_for(task, timeout=1)
        return notifier

    notifier = asyncio.run(scenario())
    assert notifier.calls == ["a"]
    assert disposed == [True]


def test_default_lister_reads_active_tenants_from_registry(provider, seeded) -> None:
    with provider.master_session() as master:
        master.add_all(
            [
                Tenant(tenant_code=TENANT, company_name="Acme"),
                Tenant(tenant_code="dormant", status=TenantStatus.suspended),
            ]
        )
        master.commit()

    stats = asyncio.run(BreachNotifier(provider=provider, clock=lambda: NOW).run_once())

    assert stats.tenants_seen == 1
    assert stats.tenants_processed == 1
    assert stats.notifications_sent == 3


class _BlockingNotifier(BreachNotifier):
    def __init__(self, **kwargs) -> None:
        super().__init__(
            provider=SimpleNamespace(dispose_all=lambda: None),
            tenant_lister=lambda: ["hung", "fine"],
            **kwargs,
        )
        self.release = threading.Event()
        self.aborted = threading.Event()

    def sweep_tenant(self, tenant_code: str, abort: threading.Event | None = None) -> TenantSweep:
        if tenant_code == "hung":
            # Stands in for a database call that never returns.
            self.release.wait(timeout=5)
            if abort is not None and abort.is_set():
                self.aborted.set()
            return TenantSweep()
        return TenantSweep(tickets=1, notifications=1)


def test_tenant_blocked_in_sync_io_still_times_out() -> None:
    notifier = _BlockingNotifier(tenant_timeout_seconds=0.1)

    async def scenario():
        try:
            return await notifier.run_once()
        finally:
            notifier.release.set()

    started = time.monotonic()
    stats = asyncio.run(scenario())

    assert time.monotonic() - started < 4
    assert stats.failed_tenants == ["hung"]
    assert stats.tenants_processed == 1
    assert stats.notifications_sent == 1
    assert notifier.aborted.is_set()
