from fastapi import Request
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import RateLimitWindow
from ratelimit import FixedWindowLimiter, client_key, purge_expired_windows


def test_limit_applies_within_one_window() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        limiter = FixedWindowLimiter(session, limit=3, window_secs=60)
        results = [limiter.hit("10.0.0.1", now=1000 + i) for i in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.count for r in results] == [1, 2, 3, 4]
        assert results[0].remaining == 2
        assert results[-1].remaining == 0
        assert results[0].reset_at == 1020


def test_new_window_resets_the_count() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        limiter = FixedWindowLimiter(session, limit=1, window_secs=60)
        assert limiter.hit("10.0.0.1", now=1000).allowed
        assert not limiter.hit("10.0.0.1", now=1010).allowed
        assert limiter.hit("10.0.0.1", now=1021).allowed


def test_keys_are_counted_separately() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        limiter = FixedWindowLimiter(session, limit=1, window_secs=60)
        assert limiter.hit("10.0.0.1", now=1000).allowed
        assert limiter.hit("10.0.0.2", now=1000).allowed


def test_purge_removes_only_expired_windows() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        limiter = FixedWindowLimiter(session, limit=5, window_secs=60)
        limiter.hit("old", now=1000)
        limiter.hit("old", now=1100)
        limiter.hit("fresh", now=5000)

        removed = purge_expired_windows(session, now=2000)
        session.commit()

        assert removed == 2
        keys = session.scalars(select(RateLimitWindow.key)).all()
        assert keys == ["fresh"]
        assert session.scalar(select(func.count()).select_from(RateLimitWindow)) == 1


def _request(host: str, forwarded: str) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [(b"x-forwarded-for", forwarded.encode())],
            "client": (host, 50000),
        }
    )


def test_client_key_ignores_forwarded_header_by_default() -> None:
    request = _request("192.0.2.7", "203.0.113.9, 10.0.0.1")
    assert client_key(request, trust_proxy=False) == "192.0.2.7"
    assert client_key(request, trust_proxy=True) == "203.0.113.9"
