from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select

from specharvest.core.config.models import AppConfig, ScheduleConfig
from specharvest.core.scheduler import service
from specharvest.core.scheduler.locks import (
    LockManager,
    RunLockedError,
    harvest_lock_name,
)
from specharvest.persistence.models import RunLock


def test_build_trigger_from_crontab():
    trigger = service.build_trigger(ScheduleConfig(cron_expression="0 */6 * * *", timezone="UTC"))
    assert isinstance(trigger, CronTrigger)


def test_build_trigger_rejects_bad_expression():
    with pytest.raises(ValueError):
        service.build_trigger(ScheduleConfig(cron_expression="every six hours"))


def test_lock_is_exclusive_per_namespace(db_session):
    locks = LockManager(db_session)
    name = harvest_lock_name("phones")

    assert locks.acquire(name, "host-a:1") is True
    assert locks.acquire(name, "host-b:2") is False
    assert locks.holder(name) == "host-a:1"
    assert locks.acquire(harvest_lock_name("tablets"), "host-b:2") is True


def test_lock_release_only_by_holder(db_session):
    locks = LockManager(db_session)
    name = harvest_lock_name("phones")
    locks.acquire(name, "host-a:1")

    assert locks.release(name, "host-b:2") is False
    assert locks.release(name, "host-a:1") is True
    assert locks.is_locked(name) is False


def test_expired_lock_can_be_taken_over(db_session):
    name = harvest_lock_name("phones")
    db_session.add(
        RunLock(
            lock_name=name,
            acquired_at=datetime.utcnow() - timedelta(hours=5),
            expires_at=datetime.utcnow() - timedelta(hours=1),
            holder_id="crashed:9",
        )
    )
    db_session.commit()

    locks = LockManager(db_session)
    assert locks.is_locked(name) is False
    assert locks.acquire(name, "host-a:1") is True
    assert locks.holder(name) == "host-a:1"


def test_cleanup_expired(db_session):
    db_session.add(
        RunLock(
            lock_name="harvest:old",
            acquired_at=datetime.utcnow() - timedelta(hours=3),
            expires_at=datetime.utcnow() - timedelta(minutes=1),
            holder_id="crashed:9",
        )
    )
    db_session.commit()

    assert LockManager(db_session).cleanup_expired() == 1


@pytest.mark.asyncio
async def test_scheduled_harvest_skips_when_locked(monkeypatch):
    async def locked(app_config, *, run_type="manual"):
        assert run_type == "scheduled"
        raise RunLockedError("harvest:phones", "host-a:1")

    monkeypatch.setattr(service, "load_app_config", lambda path=None: AppConfig())
    monkeypatch.setattr(service, "run_harvest", locked)

    assert await service.execute_scheduled_harvest() is None


def test_hold_releases_on_exit_and_rejects_second_holder(db_session):
    locks = LockManager(db_session)
    name = harvest_lock_name("phones")

    with locks.hold(name, "host-a:1"):
        assert locks.holder(name) == "host-a:1"
        with pytest.raises(RunLockedError) as exc_info:
            with locks.hold(name, "host-b:2"):
                pass
        assert exc_info.value.holder_id == "host-a:1"

    assert locks.is_locked(name) is False


@pytest.mark.asyncio
async def test_harvest_clears_expired_locks_and_releases_its_own(db_session, monkeypatch):
    from specharvest.core.catalog.listing import CatalogLister
    from specharvest.core.orchestrator.runner import run_harvest
    from specharvest.persistence import db

    db_session.add(
        RunLock(
            lock_name="harvest:tablets",
            acquired_at=datetime.utcnow() - timedelta(hours=3),
            expires_at=datetime.utcnow() - timedelta(minutes=1),
            holder_id="crashed:9",
        )
    )
    db_session.commit()

    async def no_brands(self):
        return []

    monkeypatch.setattr(db, "init_db", lambda url, echo=False: None)
    monkeypatch.setattr(db, "get_sync_session", lambda: db_session)
    monkeypatch.setattr(CatalogLister, "list_groups", no_brands)

    report = await run_harvest(AppConfig())

    assert report.aborted is False
    assert db_session.execute(select(RunLock)).scalars().all() == []
