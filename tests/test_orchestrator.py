"""End-to-end sync runs against the fake Ovation API and an in-memory store."""

import asyncio
from datetime import timedelta

import pytest
from sqlmodel import Session, select

from app.connectors.ovation.client import AuthenticationError, FetchError
from app.models.survey_models import Company, Survey
from app.sync.orchestrator import SyncInProgressError
from app.sync.writer import count_surveys

from tests.conftest import DEFAULT_START, make_survey


def _store_count(engine) -> int:
    with Session(engine) as session:
        return count_surveys(session)


async def test_empty_store_first_run(orchestrator, ovation, engine, clock):
    ovation.surveys = [
        make_survey(f"s-{i}", clock.now - timedelta(hours=3 - i)) for i in range(3)
    ]

    result = await orchestrator.run_sync()

    assert result.total_fetched == 3
    assert result.new_surveys == 3
    assert result.skipped_surveys == 0
    assert result.timestamp == clock.now
    assert _store_count(engine) == 3

    start, end = ovation.windows()[0]
    assert start == DEFAULT_START - timedelta(hours=1)
    assert end == clock.now


async def test_overlap_redelivery_adds_only_new_survey(orchestrator, ovation, engine, clock):
    first = make_survey("s-1", clock.now - timedelta(minutes=20))
    ovation.surveys = [first]
    await orchestrator.run_sync()

    clock.advance(minutes=15)
    ovation.surveys = [first, make_survey("s-2", clock.now - timedelta(minutes=2))]
    result = await orchestrator.run_sync()

    assert result.total_fetched == 2
    assert result.new_surveys == 1
    assert result.skipped_surveys == 1
    assert _store_count(engine) == 2


async def test_next_window_overlaps_latest_persisted_survey(orchestrator, ovation, clock):
    latest = clock.now - timedelta(minutes=7)
    ovation.surveys = [
        make_survey("s-1", latest - timedelta(hours=2)),
        make_survey("s-2", latest),
    ]
    await orchestrator.run_sync()

    clock.advance(minutes=15)
    ovation.surveys = []
    await orchestrator.run_sync()

    start, end = ovation.windows()[1]
    assert latest - timedelta(hours=1) <= start <= latest
    assert end == clock.now


async def test_reference_miss_still_persists(orchestrator, ovation, engine, clock):
    with Session(engine) as session:
        session.add(Company(ovation_id="known-company"))
        session.commit()
    ovation.surveys = [make_survey("s-1", clock.now, company="unknown-company")]

    result = await orchestrator.run_sync()

    assert result.new_surveys == 1
    with Session(engine) as session:
        survey = session.exec(select(Survey)).one()
        assert survey.company_id is None


async def test_auth_failure_counts_error_only(orchestrator, ovation):
    ovation.token_success = False

    with pytest.raises(AuthenticationError):
        await orchestrator.run_sync()

    stats = orchestrator.get_health_status().stats
    assert stats.total_runs == 1
    assert stats.errors == 1
    assert stats.successful_runs == 0
    assert stats.last_success is None
    assert ovation.list_requests == []


async def test_fetch_failure_is_fatal_for_run(orchestrator, ovation, engine):
    ovation.list_status = 503

    with pytest.raises(FetchError):
        await orchestrator.run_sync()

    assert orchestrator.get_health_status().stats.errors == 1
    assert _store_count(engine) == 0


async def test_unstorable_survey_does_not_abort_the_page(orchestrator, ovation, engine, clock):
    # 2**63 does not fit a SQLite INTEGER; the driver rejects it on insert.
    ovation.surveys = [
        make_survey("s-1", clock.now - timedelta(minutes=3)),
        make_survey("s-big", clock.now - timedelta(minutes=2), rating=2**63),
        make_survey("s-3", clock.now - timedelta(minutes=1)),
    ]

    result = await orchestrator.run_sync()

    assert result.total_fetched == 3
    assert result.new_surveys == 2
    assert result.skipped_surveys == 0
    with Session(engine) as session:
        stored = set(session.exec(select(Survey.ovation_id)).all())
    assert stored == {"s-1", "s-3"}
    stats = orchestrator.get_health_status().stats
    assert stats.successful_runs == 1
    assert stats.errors == 0


async def test_no_store_session_is_open_during_fetch(orchestrator, ovation, clock, monkeypatch):
    opened = []

    class TrackingSession(Session):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.was_closed = False
            opened.append(self)

        def close(self):
            self.was_closed = True
            super().close()

    monkeypatch.setattr("app.sync.orchestrator.Session", TrackingSession)
    ovation.gate = asyncio.Event()
    ovation.surveys = [make_survey("s-1", clock.now)]

    run = asyncio.create_task(orchestrator.run_sync())
    while not ovation.list_requests:
        await asyncio.sleep(0)

    assert opened
    assert all(s.was_closed for s in opened)

    ovation.gate.set()
    result = await run

    assert result.new_surveys == 1
    assert all(s.was_closed for s in opened)


async def test_concurrent_trigger_is_rejected(orchestrator, ovation, clock):
    ovation.gate = asyncio.Event()
    ovation.surveys = [make_survey("s-1", clock.now)]

    first = asyncio.create_task(orchestrator.run_sync())
    while not ovation.list_requests:
        await asyncio.sleep(0)

    assert orchestrator.is_running
    with pytest.raises(SyncInProgressError):
        await orchestrator.run_sync()

    ovation.gate.set()
    result = await first

    assert result.new_surveys == 1
    stats = orchestrator.get_health_status().stats
    assert stats.total_runs == 1
    assert stats.errors == 0
    assert ovation.token_calls == 1


async def test_session_is_reused_across_runs(orchestrator, ovation, clock):
    await orchestrator.run_sync()
    clock.advance(minutes=15)
    await orchestrator.run_sync()
    assert ovation.token_calls == 1

    clock.advance(minutes=45)
    await orchestrator.run_sync()
    assert ovation.token_calls == 2


async def test_health_after_runs(orchestrator, ovation, clock):
    assert orchestrator.get_health_status().is_healthy is False

    await orchestrator.run_sync()
    assert orchestrator.get_health_status().is_healthy is True

    clock.advance(minutes=30)
    assert orchestrator.get_health_status().is_healthy is False


async def test_detailed_status_reads_store_and_token(orchestrator, ovation, clock):
    created = clock.now - timedelta(minutes=10)
    ovation.surveys = [make_survey("s-1", created - timedelta(hours=1)), make_survey("s-2", created)]
    await orchestrator.run_sync()

    status = orchestrator.get_detailed_status()

    assert status.is_healthy is True
    assert status.database.total_surveys == 2
    assert status.database.latest_survey_date == created
    assert status.ovation.has_valid_token is True
    assert status.ovation.token_expiry == clock.now + timedelta(hours=1)
    assert status.uptime_seconds >= 0


async def test_sync_history_records_failures(orchestrator, ovation, clock):
    await orchestrator.run_sync()
    clock.advance(minutes=15)
    ovation.list_status = 500
    with pytest.raises(FetchError):
        await orchestrator.run_sync()

    history = orchestrator.get_sync_history()

    assert [run.success for run in history.recent_runs] == [False, True]
    assert history.summary.total_runs == 2
    assert history.summary.errors == 1
