import logging
from datetime import datetime, timedelta
from typing import Optional

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from carfinance.extensions import db
from carfinance.models import IpRateLimit

logger = logging.getLogger(__name__)

# Defaults (overridden by app config)
PER_IP_PER_MIN_LIMIT = 20


def parse_sales_emails(raw: str) -> list:
    return [item.strip().lower() for item in (raw or "").split(",") if item and item.strip()]


def log_access_decision(route_name: str, user_id: Optional[int], decision: str, reason: str = ""):
    user_info = f"user_id={user_id}" if user_id else "anonymous"
    log_msg = f"[ACCESS] {route_name} | {user_info} | {decision}"
    if reason:
        log_msg += f" | {reason}"
    logger.info(log_msg)


def get_client_ip() -> str:
    xff = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip() if request else ""
    ip = xff or (request.remote_addr or "")
    return ip[:64] if ip else "unknown"


def check_and_increment_ip_rate_limit(ip: str, limit: int = PER_IP_PER_MIN_LIMIT, now_utc: Optional[datetime] = None):
    """
    Count one request for ``ip`` in the current minute bucket.
    Returns (allowed, count, resets_at).
    """
    now = now_utc or datetime.utcnow()
    window_start = now.replace(second=0, microsecond=0)
    resets_at = window_start + timedelta(minutes=1)
    cleanup_before = window_start - timedelta(days=1)

    def _increment_record():
        db.session.query(IpRateLimit).filter(IpRateLimit.window_start < cleanup_before).delete(synchronize_session=False)

        bind = db.session.get_bind()
        dialect_name = bind.dialect.name if bind else ""
        base_values = {"ip": ip, "window_start": window_start, "count": 1, "updated_at": now}
        try:
            if dialect_name == "postgresql":
                from sqlalchemy.dialects.postgresql import insert as pg_insert
                stmt = (
                    pg_insert(IpRateLimit)
                    .values(**base_values)
                    .on_conflict_do_update(
                        index_elements=["ip", "window_start"],
                        set_={"count": IpRateLimit.__table__.c.count + 1, "updated_at": now},
                    )
                    .returning(IpRateLimit.count)
                )
                new_count = db.session.execute(stmt).scalar_one()
            elif dialect_name == "sqlite":
                from sqlalchemy.dialects.sqlite import insert as sqlite_insert
                stmt = (
                    sqlite_insert(IpRateLimit)
                    .values(**base_values)
                    .on_conflict_do_update(
                        index_elements=["ip", "window_start"],
                        set_={"count": IpRateLimit.__table__.c.count + 1, "updated_at": now},
                    )
                )
                db.session.execute(stmt)
                record = IpRateLimit.query.filter_by(ip=ip, window_start=window_start).first()
                new_count = record.count if record else 0
            else:
                raise SQLAlchemyError("dialect_upsert_not_supported")

            if new_count > limit:
                return False, new_count
            return True, new_count
        except SQLAlchemyError:
            logger.warning("[RATE] upsert unavailable, falling back to row update")

        record = IpRateLimit.query.filter_by(ip=ip, window_start=window_start).first()
        if record is None:
            record = IpRateLimit(ip=ip, window_start=window_start, count=0, updated_at=now)
            db.session.add(record)
            db.session.flush()

        if record.count >= limit:
            return False, record.count

        record.count += 1
        record.updated_at = now
        return True, record.count

    try:
        with db.session.begin_nested():
            ok, count = _increment_record()
        db.session.commit()
        if not ok:
            logger.warning("[RATE] ip limit reached ip=%s count=%s", ip, count)
        return ok, count, resets_at
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("[RATE] rate limit bookkeeping failed")
        return False, 0, resets_at


def enforce_ip_rate_limit():
    """Count the current request against its IP; returns a 429 response when over the limit, else None."""
    from flask import current_app
    from carfinance.utils.http_helpers import rate_limited_response

    limit = int(current_app.config.get("PER_IP_PER_MIN_LIMIT", PER_IP_PER_MIN_LIMIT))
    ok, count, resets_at = check_and_increment_ip_rate_limit(get_client_ip(), limit=limit)
    if ok:
        return None
    return rate_limited_response(limit, count, resets_at)
