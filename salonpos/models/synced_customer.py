from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from salonpos.core.database import Base


class SyncedCustomer(Base):
    __tablename__ = "synced_customers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "pos_customer_id", name="uq_synced_customers_tenant_customer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    pos_customer_id = Column(String, nullable=False)
    display_name = Column(String, nullable=False, default="Client")
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
