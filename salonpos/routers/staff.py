from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from salonpos.core.database import get_db
from salonpos.deps import client_key, get_current_account, http_error, require_owner_tenant
from salonpos.models.account import Account
from salonpos.models.staff_member import SOURCE_INVITE, STATUS_INVITED, StaffMember
from salonpos.models.tenant import Tenant
from salonpos.services.audit import log_action
from salonpos.services.auth import session_response
from salonpos.services.errors import ExpiredPin, InvalidPin, SalonPosError, TooManyAttempts
from salonpos.services.permissions import (
    effective_permissions,
    list_access_levels,
    normalize_level_id,
    validate_overrides,
)
from salonpos.services.pin_attempts import check_pin_lock, clear_pin_attempts, register_failed_pin
from salonpos.services.pin_lifecycle import PinLifecycleManager, PinRecord
from salonpos.services.tenant_cache import tenant_data_cache
from salonpos.services.tenant_store import TenantStore

router = APIRouter(prefix="/api/staff", tags=["staff"])

logger = logging.getLogger(__name__)

JOIN_WELCOME_MESSAGE = "Welcome aboard! Your account is ready."


class StaffRead(BaseModel):
    staff_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    level_id: str
    status: str
    source: str
    permissions: Dict[str, bool]
    permission_overrides: Dict[str, bool]
    has_pending_pin: bool
    pin_expires_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None


class StaffInvite(BaseModel):
    staff_id: Optional[str] = Field(None, min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=120)
    email: Optional[EmailStr] = None
    level_id: Optional[str] = None
    permission_overrides: Optional[Dict[str, bool]] = None


class StaffUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    level_id: Optional[str] = None
    permission_overrides: Optional[Dict[str, bool]] = None


class GeneratePinPayload(BaseModel):
    staff_id: str = Field(..., min_length=1, max_length=64)
    name: Optional[str] = Field(None, max_length=120)
    email: Optional[EmailStr] = None
    level_id: Optional[str] = None


class GeneratePinResponse(BaseModel):
    staff_id: str
    pin: str
    issued_at: datetime
    expires_at: datetime


class VerifyPinPayload(BaseModel):
    pin: str = Field(..., max_length=16)


class VerifyPinResponse(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    staff_id: str
    expires_at: datetime


class JoinPayload(BaseModel):
    pin: str = Field(..., max_length=16)
    email: EmailStr
    password: str = Field(..., max_length=256)


def _staff_read(staff: StaffMember) -> dict:
    record = PinRecord.from_staff(staff)
    return {
        "staff_id": staff.pos_team_member_id,
        "name": staff.display_name,
        "email": staff.email,
        "level_id": normalize_level_id(staff.level_id),
        "status": staff.status,
        "source": staff.source,
        "permissions": effective_permissions(staff.level_id, staff.permission_overrides),
        "permission_overrides": dict(staff.permission_overrides or {}),
        "has_pending_pin": record is not None,
        "pin_expires_at": record.expires_at() if record else None,
        "joined_at": staff.joined_at,
    }


def _owned_staff(db: Session, tenant: Tenant, staff_id: str) -> StaffMember:
    staff = TenantStore(db).get_staff(staff_id)
    if not staff or int(staff.tenant_id) != int(tenant.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "STAFF_NOT_FOUND", "message": "Staff member not found"},
        )
    return staff


def _overrides_or_400(overrides: Optional[Dict[str, bool]]) -> Dict[str, bool]:
    try:
        return validate_overrides(overrides)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_PERMISSIONS", "message": str(exc)},
        ) from exc


def _ensure_not_locked(db: Session, key: str) -> None:
    locked, locked_until = check_pin_lock(db, key)
    if locked:
        exc = TooManyAttempts(locked_until=locked_until.isoformat() if locked_until else None)
        raise http_error(exc)


def _register_pin_failure(db: Session, key: str) -> None:
    _attempt, locked = register_failed_pin(db, key)
    db.commit()
    if locked:
        logger.warning("pin attempts locked client=%s", key)


@router.get("/levels")
def access_levels(_account: Account = Depends(get_current_account)):
    return {"levels": list_access_levels()}


@router.get("", response_model=List[StaffRead])
def list_staff(
    tenant: Tenant = Depends(require_owner_tenant),
    db: Session = Depends(get_db),
):
    return [_staff_read(staff) for staff in TenantStore(db).list_team(tenant.id)]


@router.post("/invite", response_model=StaffRead, status_code=status.HTTP_201_CREATED)
def invite_staff(
    payload: StaffInvite,
    account: Account = Depends(get_current_account),
    tenant: Tenant = Depends(require_owner_tenant),
    db: Session = Depends(get_db),
):
    overrides = _overrides_or_400(payload.permission_overrides)
    store = TenantStore(db)
    staff_id = (payload.staff_id or f"invite-{uuid.uuid4().hex[:12]}").strip()

    staff = store.get_staff(staff_id)
    if staff is not None and int(staff.tenant_id) != int(tenant.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "STAFF_ID_TAKEN", "message": "Staff id already belongs to another salon"},
        )
    if staff is None:
        staff = StaffMember(
            tenant_id=tenant.id,
            pos_team_member_id=staff_id,
            status=STATUS_INVITED,
            source=SOURCE_INVITE,
        )
        db.add(staff)

    staff.display_name = payload.name.strip()
    if payload.email:
        staff.email = str(payload.email).strip().lower()
    staff.level_id = normalize_level_id(payload.level_id)
    staff.permission_overrides = overrides or None
    db.flush()

    log_action(
        db,
        tenant_id=tenant.id,
        actor_id=account.id,
        action="staff.invited",
        entity_type="staff_member",
        entity_id=staff_id,
        meta={"level_id": staff.level_id},
    )
    db.commit()
    tenant_data_cache.invalidate_tenant(tenant.id)
    return _staff_read(staff)


@router.patch("/{staff_id}", response_model=StaffRead)
def update_staff(
    staff_id: str,
    payload: StaffUpdate,
    account: Account = Depends(get_current_account),
    tenant: Tenant = Depends(require_owner_tenant),
    db: Session = Depends(get_db),
):
    staff = _owned_staff(db, tenant, staff_id)

    if payload.name is not None:
        staff.display_name = payload.name.strip()
    if payload.level_id is not None:
        staff.level_id = normalize_level_id(payload.level_id)
    if payload.permission_overrides is not None:
        staff.permission_overrides = _overrides_or_400(payload.permission_overrides) or None

    # Joined accounts carry a copy of their permissions in their profile.
    permissions = effective_permissions(staff.level_id, staff.permission_overrides)
    for member_account in TenantStore(db).list_accounts_for_staff(staff.pos_team_member_id):
        member_account.level_id = staff.level_id
        member_account.permissions = permissions

    log_action(
        db,
        tenant_id=tenant.id,
        actor_id=account.id,
        action="staff.updated",
        entity_type="staff_member",
        entity_id=staff.pos_team_member_id,
        meta={"level_id": staff.level_id, "overrides": staff.permission_overrides or {}},
    )
    db.commit()
    tenant_data_cache.invalidate_tenant(tenant.id)
    return _staff_read(staff)


@router.post("/generate-pin", response_model=GeneratePinResponse, status_code=status.HTTP_201_CREATED)
def generate_pin(
    payload: GeneratePinPayload,
    request: Request,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    manager = PinLifecycleManager(db)
    try:
        issued = manager.generate(
            account,
            payload.staff_id,
            display_name=payload.name,
            email=str(payload.email) if payload.email else None,
            level_id=payload.level_id,
        )
    except SalonPosError as exc:
        raise http_error(exc) from exc

    tenant = manager.store.get_tenant_by_owner(account.id)
    if tenant is not None:
        request.state.tenant_id = tenant.id
        tenant_data_cache.invalidate_tenant(tenant.id)
    return {
        "staff_id": issued.staff_id,
        "pin": issued.code,
        "issued_at": issued.issued_at,
        "expires_at": issued.expires_at,
    }


@router.post("/verify-pin", response_model=VerifyPinResponse)
def verify_pin(
    payload: VerifyPinPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    key = client_key(request)
    _ensure_not_locked(db, key)
    try:
        return PinLifecycleManager(db).verify(payload.pin)
    except (InvalidPin, ExpiredPin) as exc:
        _register_pin_failure(db, key)
        raise http_error(exc) from exc


@router.post("/join")
def join(
    payload: JoinPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    key = client_key(request)
    _ensure_not_locked(db, key)
    try:
        result = PinLifecycleManager(db).join(payload.pin, str(payload.email), payload.password)
    except (InvalidPin, ExpiredPin) as exc:
        _register_pin_failure(db, key)
        raise http_error(exc) from exc
    except SalonPosError as exc:
        raise http_error(exc) from exc

    clear_pin_attempts(db, key)
    db.commit()
    request.state.tenant_id = result.tenant_id
    tenant_data_cache.invalidate_tenant(result.tenant_id)
    return {
        "success": True,
        "message": JOIN_WELCOME_MESSAGE,
        "created": result.created,
        "staff_id": result.staff.pos_team_member_id,
        **session_response(result.account, tenant_id=result.tenant_id),
    }
