from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from salonpos.core.database import Base

STATUS_INVITED = "invited"
STATUS_PENDING_PIN = "pending-pin"
STATUS_JOINED = "joined"

SOURCE_ROSTER = "roster"
SOURCE_INVITE = "invite"


class StaffMember(Base):
    __tablename__ = "staff_members"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    # POS team member id; also the staff_id carried in account metadata.
    pos_team_member_id = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    level_id = Column(String, nullable=False, default="lvl_1")
    permission_overrides = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default=STATUS_INVITED)
    source = Column(String, nullable=False, default=SOURCE_ROSTER)

    join_pin = Column(String(4), nullable=True, index=True)
    pin_created_at = Column(DateTime, nullable=True)
    joined_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
