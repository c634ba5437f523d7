from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from salonpos.core.database import Base, get_db
from salonpos.models.account import Account
from salonpos.models.staff_member import StaffMember
from salonpos.models.tenant import Tenant
from salonpos.routers.auth import router as auth_router
from salonpos.routers.staff import router as staff_router
from salonpos.services.auth import create_access_token
from salonpos.services.passwords import hash_password
from tests.fixtures_data import OWNER_A, OWNER_B, POS_TOKEN_A, POS_TOKEN_B

OWNER_PASSWORD = "owner-pass-123"


def _build_client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = session_factory()
    tenant_a = Tenant(owner_user_id=OWNER_A["id"], pos_access_token=POS_TOKEN_A)
    tenant_b = Tenant(owner_user_id=OWNER_B["id"], pos_access_token=POS_TOKEN_B)
    db.add_all(
        [
            tenant_a,
            tenant_b,
            Account(**OWNER_A, password_hash=hash_password(OWNER_PASSWORD)),
            Account(**OWNER_B),
        ]
    )
    db.flush()
    db.add(StaffMember(tenant_id=tenant_b.id, pos_team_member_id="TM-B1", display_name="Kai"))
    db.commit()
    db.close()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app = FastAPI()
    app.include_router(auth_router)
    app.include_router(staff_router)
    app.dependency_overrides[get_db] = _get_db
    return TestClient(app)


def _auth(account_id):
    return {"Authorization": f"Bearer {create_access_token(account_id)}"}


def _generate(client, staff_id="TM-7", **extra):
    payload = {"staff_id": staff_id, "name": "Jo", "email": "jo@glowsalon.com", **extra}
    response = client.post("/api/staff/generate-pin", json=payload, headers=_auth(OWNER_A["id"]))
    assert response.status_code == 201
    return response.json()


def test_owner_onboards_staff_with_pin_end_to_end():
    client = _build_client()

    issued = _generate(client)
    assert len(issued["pin"]) == 4
    assert issued["staff_id"] == "TM-7"

    roster = client.get("/api/staff", headers=_auth(OWNER_A["id"]))
    assert roster.status_code == 200
    [entry] = roster.json()
    assert entry["staff_id"] == "TM-7"
    assert entry["status"] == "pending-pin"
    assert entry["has_pending_pin"] is True
    assert "pin" not in entry
    assert "join_pin" not in entry

    preview = client.post("/api/staff/verify-pin", json={"pin": issued["pin"]})
    assert preview.status_code == 200
    assert preview.json()["staff_id"] == "TM-7"
    assert preview.json()["name"] == "Jo"

    joined = client.post(
        "/api/staff/join",
        json={"pin": issued["pin"], "email": "jo@glowsalon.com", "password": "s3cretpass"},
    )
    assert joined.status_code == 200
    body = joined.json()
    assert body["success"] is True
    assert body["created"] is True
    assert body["role"] == "staff"
    assert body["message"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["staff_id"] == "TM-7"
    assert me.json()["tenant_id"] == body["tenant_id"]
    assert me.json()["resolved_via"] == "metadata"
    assert me.json()["has_pos_credential"] is True
    assert me.json()["permissions"]["can_book_appointments"] is True

    login = client.post("/auth/login", json={"email": "jo@glowsalon.com", "password": "s3cretpass"})
    assert login.status_code == 200
    assert login.json()["tenant_id"] == body["tenant_id"]

    reused = client.post("/api/staff/verify-pin", json={"pin": issued["pin"]})
    assert reused.status_code == 400
    assert reused.json()["detail"]["code"] == "INVALID_PIN"

    roster_after = client.get("/api/staff", headers=_auth(OWNER_A["id"])).json()
    assert roster_after[0]["status"] == "joined"
    assert roster_after[0]["has_pending_pin"] is False


def test_login_rejects_wrong_password():
    client = _build_client()

    response = client.post("/auth/login", json={"email": OWNER_A["email"], "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_CREDENTIALS"


def test_staff_cannot_generate_pins_or_list_roster():
    client = _build_client()
    issued = _generate(client)
    body = client.post(
        "/api/staff/join",
        json={"pin": issued["pin"], "email": "jo@glowsalon.com", "password": "s3cretpass"},
    ).json()
    staff_headers = {"Authorization": f"Bearer {body['access_token']}"}

    generate = client.post("/api/staff/generate-pin", json={"staff_id": "TM-8"}, headers=staff_headers)
    roster = client.get("/api/staff", headers=staff_headers)

    assert generate.status_code == 403
    assert generate.json()["detail"]["code"] == "OWNER_REQUIRED"
    assert roster.status_code == 403


def test_generate_for_another_salons_staff_is_refused():
    client = _build_client()

    response = client.post("/api/staff/generate-pin", json={"staff_id": "TM-B1"}, headers=_auth(OWNER_A["id"]))

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "STAFF_NOT_FOUND"


def test_repeated_wrong_pins_lock_the_client():
    client = _build_client()
    issued = _generate(client)

    for _ in range(8):
        response = client.post("/api/staff/verify-pin", json={"pin": "0000"})
        assert response.status_code == 400

    locked = client.post("/api/staff/verify-pin", json={"pin": issued["pin"]})
    assert locked.status_code == 429
    assert locked.json()["detail"]["code"] == "TOO_MANY_ATTEMPTS"

    join = client.post(
        "/api/staff/join",
        json={"pin": issued["pin"], "email": "jo@glowsalon.com", "password": "s3cretpass"},
    )
    assert join.status_code == 429


def test_rotating_forwarded_header_does_not_reset_the_lock():
    client = _build_client()
    issued = _generate(client)

    statuses = []
    for attempt in range(10):
        response = client.post(
            "/api/staff/verify-pin",
            json={"pin": "0000"},
            headers={"X-Forwarded-For": f"198.51.100.{attempt}"},
        )
        statuses.append(response.status_code)

    assert statuses[:8] == [400] * 8
    assert statuses[8:] == [429, 429]
    locked = client.post(
        "/api/staff/verify-pin",
        json={"pin": issued["pin"]},
        headers={"X-Forwarded-For": "192.0.2.77"},
    )
    assert locked.status_code == 429


def test_weak_password_is_rejected_and_pin_survives():
    client = _build_client()
    issued = _generate(client)

    weak = client.post(
        "/api/staff/join",
        json={"pin": issued["pin"], "email": "jo@glowsalon.com", "password": "short"},
    )
    assert weak.status_code == 400
    assert weak.json()["detail"]["code"] == "WEAK_PASSWORD"

    preview = client.post("/api/staff/verify-pin", json={"pin": issued["pin"]})
    assert preview.status_code == 200


def test_join_with_owner_email_conflicts():
    client = _build_client()
    issued = _generate(client)

    response = client.post(
        "/api/staff/join",
        json={"pin": issued["pin"], "email": OWNER_A["email"], "password": "s3cretpass"},
    )

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "ACCOUNT_CONFLICT"


def test_level_change_updates_joined_account_permissions():
    client = _build_client()
    issued = _generate(client)
    body = client.post(
        "/api/staff/join",
        json={"pin": issued["pin"], "email": "jo@glowsalon.com", "password": "s3cretpass"},
    ).json()
    staff_headers = {"Authorization": f"Bearer {body['access_token']}"}
    assert client.get("/auth/me", headers=staff_headers).json()["permissions"]["view_global_reports"] is False

    updated = client.patch(
        "/api/staff/TM-7",
        json={"level_id": "lvl_3", "permission_overrides": {"view_client_contact": False}},
        headers=_auth(OWNER_A["id"]),
    )

    assert updated.status_code == 200
    assert updated.json()["level_id"] == "lvl_3"
    assert updated.json()["permission_overrides"] == {"view_client_contact": False}
    permissions = client.get("/auth/me", headers=staff_headers).json()["permissions"]
    assert permissions["view_global_reports"] is True
    assert permissions["view_client_contact"] is False


def test_invite_creates_placeholder_staff():
    client = _build_client()

    response = client.post(
        "/api/staff/invite",
        json={"name": "New Hire", "email": "New.Hire@GlowSalon.com", "level_id": "lvl_2"},
        headers=_auth(OWNER_A["id"]),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["staff_id"].startswith("invite-")
    assert body["source"] == "invite"
    assert body["status"] == "invited"
    assert body["email"] == "new.hire@glowsalon.com"
    assert body["permissions"]["can_offer_discounts"] is True
    assert body["has_pending_pin"] is False


def test_invite_rejects_unknown_permission_keys_and_foreign_staff_ids():
    client = _build_client()

    bad_override = client.post(
        "/api/staff/invite",
        json={"name": "New Hire", "permission_overrides": {"can_fly": True}},
        headers=_auth(OWNER_A["id"]),
    )
    taken = client.post(
        "/api/staff/invite",
        json={"staff_id": "TM-B1", "name": "Kai"},
        headers=_auth(OWNER_A["id"]),
    )

    assert bad_override.status_code == 400
    assert bad_override.json()["detail"]["code"] == "INVALID_PERMISSIONS"
    assert taken.status_code == 409
    assert taken.json()["detail"]["code"] == "STAFF_ID_TAKEN"


def test_access_levels_are_listed_for_signed_in_accounts():
    client = _build_client()

    response = client.get("/api/staff/levels", headers=_auth(OWNER_A["id"]))

    assert response.status_code == 200
    assert [level["id"] for level in response.json()["levels"]] == ["lvl_1", "lvl_2", "lvl_3"]
