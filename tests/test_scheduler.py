from contextlib import contextmanager

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

import scheduler
from database import Base
from models import RateLimitWindow
from ratelimit import FixedWindowLimiter
from scheduler import PURGE_JOB_ID, SchedulerManager


def test_purge_job_removes_expired_windows(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        FixedWindowLimiter(session, limit=5, window_secs=60).hit("old", now=1000)

    @contextmanager
    def fake_scope():
        with Session(engine) as session:
            yield session
            session.commit()

    monkeypatch.setattr(scheduler, "session_scope", fake_scope)

    assert SchedulerManager(interval_minutes=5).purge_rate_limits("test") == 1
    with Session(engine) as session:
        assert session.scalar(select(func.count()).select_from(RateLimitWindow)) == 0


def test_start_registers_interval_job_once(monkeypatch) -> None:
    manager = SchedulerManager(interval_minutes=15)
    calls: list[str] = []

    def record(source: str = "manual") -> int:
        calls.append(source)
        return 0

    monkeypatch.setattr(manager, "purge_rate_limits", record)

    manager.start()
    try:
        manager.start()
        jobs = manager.scheduler.get_jobs()
        assert [job.id for job in jobs] == [PURGE_JOB_ID]
        assert calls == ["startup"]
    finally:
        manager.stop()
    assert not manager.scheduler.running
