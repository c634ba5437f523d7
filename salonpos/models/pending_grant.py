from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from salonpos.core.database import Base


class PendingPosGrant(Base):
    """POS credential obtained by OAuth while the owner's email is still unknown."""

    __tablename__ = "pending_pos_grants"

    id = Column(String(32), primary_key=True)
    pos_merchant_id = Column(String, nullable=True)
    pos_access_token = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    consumed_at = Column(DateTime, nullable=True)
