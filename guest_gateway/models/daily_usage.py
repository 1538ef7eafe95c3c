"""
Per-identity, per-UTC-day usage counter.

No reset job: a missing row for today means zero usage. Rows are only ever
incremented, through usage_tracker.consume_units().
"""
from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from guest_gateway.db.base import Base


class DailyUsage(Base):
    __tablename__ = "daily_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "usage_date", name="uq_daily_usage_user_date"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    usage_date = Column(Date, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<DailyUsage(user_id={self.user_id}, usage_date={self.usage_date}, usage_count={self.usage_count})>"
