from sqlalchemy import Column, Integer, String, Text
from guest_gateway.db.base import Base


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), unique=True, nullable=False)
    daily_limit = Column(Integer, nullable=True)  # -1 = unlimited, NULL = configured DAILY_LIMIT
    velocity_limit = Column(Integer, nullable=True)  # -1 = unlimited, NULL = configured VELOCITY_LIMIT
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Role(id={self.id}, name={self.name}, daily_limit={self.daily_limit})>"
