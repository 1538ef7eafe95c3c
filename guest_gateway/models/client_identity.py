"""
One row per client installation.

client_token is the primary identity key. device_signature is bound at first
sight and never rewritten by the gateway: the stored value wins over whatever
signature a returning client sends.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from guest_gateway.db.base import Base
from guest_gateway.core.role_limits import GUEST_ROLE_ID


class ClientIdentity(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    client_token = Column(String(128), unique=True, index=True, nullable=False)
    device_signature = Column(String(128), index=True, nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), default=GUEST_ROLE_ID, nullable=False)
    ban_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), server_default=func.now())

    role = relationship("Role", lazy="joined")

    def __repr__(self):
        return f"<ClientIdentity(id={self.id}, client_token={self.client_token[:8]}..., role_id={self.role_id})>"
