from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from salonpos.core.database import Base


class SyncedCatalogItem(Base):
    __tablename__ = "synced_catalog_items"
    __table_args__ = (
        UniqueConstraint("tenant_id", "pos_variation_id", name="uq_synced_catalog_items_tenant_variation"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    pos_item_id = Column(String, nullable=True)
    pos_variation_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    variation_name = Column(String, nullable=True)
    price_cents = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    duration_minutes = Column(Integer, nullable=True)
    category_id = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
