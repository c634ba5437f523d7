import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from salonpos.core.database import Base

ROLE_OWNER = "owner"
ROLE_STAFF = "staff"


def _new_account_id() -> str:
    return str(uuid.uuid4())


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_new_account_id)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_STAFF)
    display_name = Column(String, nullable=True)

    # Staff profile metadata captured at join time.
    tenant_id = Column(Integer, nullable=True, index=True)
    staff_id = Column(String, nullable=True, index=True)
    level_id = Column(String, nullable=True)
    permissions = Column(JSON, nullable=True)

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_owner(self) -> bool:
        return (self.role or "").strip().lower() == ROLE_OWNER
