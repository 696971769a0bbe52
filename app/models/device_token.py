from sqlalchemy import Column, Integer, String

from app.core.database import Base
from app.models.base import TimestampMixin


class DeviceToken(Base, TimestampMixin):
    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    token = Column(String(512), nullable=False, unique=True)
    platform = Column(String(16), nullable=True)  # android|ios|web
