"""
Service for reading and committing per-identity daily usage.

All quota state lives in the daily_usage table, keyed by (user_id, usage_date).
Reads are plain selects; the only write path is consume_units(), which checks
and increments in a single conditional UPDATE so concurrent requests cannot
push a counter past its limit.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from guest_gateway.core.role_limits import UNLIMITED
from guest_gateway.models.client_identity import ClientIdentity
from guest_gateway.models.daily_usage import DailyUsage
from guest_gateway.models.request_log import RequestLog

logger = logging.getLogger(__name__)

daily_usage_table = DailyUsage.__table__
users_table = ClientIdentity.__table__

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def usage_today() -> date:
    """Quota days roll over at UTC midnight."""
    return utcnow().date()


def get_identity_usage(db: Session, identity_id: int, usage_date: date) -> int:
    """Usage already committed today for one identity (0 when no row exists)."""
    count = db.query(DailyUsage.usage_count).filter(
        DailyUsage.user_id == identity_id,
        DailyUsage.usage_date == usage_date
    ).scalar()
    return count or 0


def get_device_usage(db: Session, device_signature: str, usage_date: date) -> int:
    """
    Usage committed today by every identity bound to this device signature.

    Used only for the pre-registration check on a client token we have never
    seen, so a saturated device cannot mint fresh identities.
    """
    total = db.query(func.coalesce(func.sum(DailyUsage.usage_count), 0)).join(
        ClientIdentity, ClientIdentity.id == DailyUsage.user_id
    ).filter(
        ClientIdentity.device_signature == device_signature,
        DailyUsage.usage_date == usage_date
    ).scalar()
    return int(total or 0)


def _insert_if_absent(db: Session, identity_id: int, usage_date: date, units: int, now: datetime) -> bool:
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Unsupported database dialect for usage tracking: {dialect}")
    stmt = insert(daily_usage_table).values(
        user_id=identity_id,
        usage_date=usage_date,
        usage_count=units,
        last_used_at=now,
    ).on_conflict_do_nothing(index_elements=["user_id", "usage_date"])
    return db.execute(stmt).rowcount == 1


def _increment_within_limit(db: Session, identity_id: int, usage_date: date, units: int, limit: int, now: datetime) -> bool:
    stmt = update(daily_usage_table).where(
        daily_usage_table.c.user_id == identity_id,
        daily_usage_table.c.usage_date == usage_date,
    ).values(
        usage_count=daily_usage_table.c.usage_count + units,
        last_used_at=now,
    )
    if limit != UNLIMITED:
        stmt = stmt.where(daily_usage_table.c.usage_count + units <= limit)
    return db.execute(stmt).rowcount == 1


def _lock_device(db: Session, device_signature: str, now: datetime) -> None:
    """Write-lock every identity bound to this device until the transaction ends."""
    db.query(ClientIdentity.id).filter(
        ClientIdentity.device_signature == device_signature
    ).order_by(ClientIdentity.id).with_for_update().all()
    # SQLite has no FOR UPDATE; a write takes its database lock instead
    db.execute(update(users_table).where(
        users_table.c.device_signature == device_signature
    ).values(last_seen_at=now))


def consume_units(
    db: Session,
    identity_id: int,
    units: int,
    limit: int,
    usage_date: Optional[date] = None,
    device_signature: Optional[str] = None,
    device_limit: int = UNLIMITED,
) -> Optional[int]:
    """
    Atomically add `units` to today's counter if the result stays within `limit`.

    Returns the new usage count, or None when the increment would exceed the
    limit (nothing is written in that case). limit == -1 means unlimited.

    With a device_signature and device_limit, the sum over every identity on
    that device must also stay within device_limit. The device's identity rows
    are locked first, so commits for different tokens on one device are
    serialized and cannot jointly overshoot the device cap.

    Check and increment are one UPDATE ... WHERE usage_count + n <= limit, so
    two requests racing for the last unit cannot both win. When today's row
    does not exist yet it is inserted with ON CONFLICT DO NOTHING; losing that
    race means another request just created the row, and the conditional
    update is retried against it.
    """
    if units <= 0:
        raise ValueError("units must be positive")
    usage_date = usage_date or usage_today()
    now = utcnow()

    if limit != UNLIMITED and units > limit:
        return None
    check_device = device_signature is not None and device_limit != UNLIMITED

    try:
        if check_device:
            _lock_device(db, device_signature, now)
            device_usage = get_device_usage(db, device_signature, usage_date)
            if device_usage + units > device_limit:
                db.rollback()
                logger.info("Device cap reached for %s...: %s/%s", device_signature[:8], device_usage, device_limit)
                return None

        for _ in range(2):
            if _increment_within_limit(db, identity_id, usage_date, units, limit, now):
                break
            if _insert_if_absent(db, identity_id, usage_date, units, now):
                break
        else:
            db.rollback()
            return None

        # Same transaction: the row is write-locked until commit
        new_count = get_identity_usage(db, identity_id, usage_date)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Usage committed for identity %s: %s (+%s)", identity_id, new_count, units)
    return new_count


def count_recent_requests(db: Session, identity_id: int, window_seconds: int) -> int:
    cutoff = utcnow() - timedelta(seconds=window_seconds)
    return db.query(func.count(RequestLog.id)).filter(
        RequestLog.user_id == identity_id,
        RequestLog.requested_at >= cutoff
    ).scalar() or 0


def record_request(db: Session, identity_id: int) -> None:
    """Append a request_log row. Caller commits."""
    db.add(RequestLog(user_id=identity_id, requested_at=utcnow()))
