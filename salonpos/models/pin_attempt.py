from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from salonpos.core.database import Base


class PinAttempt(Base):
    __tablename__ = "pin_attempts"

    id = Column(Integer, primary_key=True, index=True)
    client_key = Column(String, unique=True, nullable=False, index=True)
    failed_count = Column(Integer, nullable=False, default=0)
    first_failed_at = Column(DateTime, nullable=True)
    last_failed_at = Column(DateTime, nullable=True)
    locked_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
