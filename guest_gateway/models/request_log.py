from sqlalchemy import Column, Integer, DateTime, ForeignKey, Index
from guest_gateway.db.base import Base


class RequestLog(Base):
    """Append-only request timestamps for velocity detection."""
    __tablename__ = "request_log"
    __table_args__ = (
        Index("idx_logs_user_time", "user_id", "requested_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    requested_at = Column(DateTime(timezone=True), nullable=False)
