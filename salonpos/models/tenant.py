from sqlalchemy import Column, DateTime, Integer, String, Text, func

from salonpos.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    # Account id of the salon owner; one tenant per owner.
    owner_user_id = Column(String(36), unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    pos_merchant_id = Column(String, index=True, nullable=True)
    # Never serialized, never logged.
    pos_access_token = Column(Text, nullable=True)
    pos_connected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def has_credential(self) -> bool:
        return bool((self.pos_access_token or "").strip())

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} owner={self.owner_user_id} merchant={self.pos_merchant_id}>"
