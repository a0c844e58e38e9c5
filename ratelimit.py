import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy import delete
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from models import RateLimitWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    count: int
    limit: int
    reset_at: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


def _upsert_factory(session: Session):
    if session.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


class FixedWindowLimiter:
    """Counts hits per key in fixed windows stored in the shared database."""

    def __init__(
        self,
        session: Session,
        limit: Optional[int] = None,
        window_secs: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.session = session
        self.limit = limit or settings.rate_limit_max
        self.window_secs = window_secs or settings.rate_limit_window_secs

    def hit(self, key: str, now: Optional[float] = None) -> RateLimitResult:
        now_secs = int(now if now is not None else time.time())
        window_start = now_secs - (now_secs % self.window_secs)
        expires_at = window_start + self.window_secs

        insert = _upsert_factory(self.session)
        table = RateLimitWindow.__table__
        stmt = (
            insert(table)
            .values(key=key, window_start=window_start, count=1, expires_at=expires_at)
            .on_conflict_do_update(
                index_elements=[table.c.key, table.c.window_start],
                set_={"count": table.c.count + 1},
            )
            .returning(table.c.count)
        )
        count = int(self.session.execute(stmt).scalar_one())
        self.session.commit()
        return RateLimitResult(
            allowed=count <= self.limit,
            count=count,
            limit=self.limit,
            reset_at=expires_at,
        )


def purge_expired_windows(session: Session, now: Optional[float] = None) -> int:
    now_secs = int(now if now is not None else time.time())
    result = session.execute(
        delete(RateLimitWindow).where(RateLimitWindow.expires_at <= now_secs)
    )
    return result.rowcount or 0


def client_key(request: Request, trust_proxy: Optional[bool] = None) -> str:
    if trust_proxy is None:
        trust_proxy = get_settings().trust_proxy
    # X-Forwarded-For is client controlled unless a proxy rewrites it
    if trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(request: Request, db: Session = Depends(get_db)) -> None:
    key = client_key(request)
    result = FixedWindowLimiter(db).hit(key)
    if not result.allowed:
        logger.warning(f"rate_limited: key={key} count={result.count}")
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later.",
            headers={"Retry-After": str(max(1, result.reset_at - int(time.time())))},
        )
