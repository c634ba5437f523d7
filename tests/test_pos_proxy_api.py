import json

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from salonpos.core.database import Base, get_db
from salonpos.deps import get_pos_client
from salonpos.models.account import Account
from salonpos.models.staff_member import StaffMember
from salonpos.models.tenant import Tenant
from salonpos.routers.pos_proxy import router as pos_proxy_router
from salonpos.services.auth import create_access_token
from salonpos.services.pos_client import PosClient
from tests.fixtures_data import OWNER_A, OWNER_B, POS_TOKEN_A, POS_TOKEN_B


def _build_client(handler):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = session_factory()
    tenant_a = Tenant(owner_user_id=OWNER_A["id"], pos_merchant_id="M-A", pos_access_token=POS_TOKEN_A)
    tenant_b = Tenant(owner_user_id=OWNER_B["id"], pos_merchant_id="M-B", pos_access_token=POS_TOKEN_B)
    tenant_c = Tenant(owner_user_id="owner-c", pos_access_token=None)
    db.add_all([tenant_a, tenant_b, tenant_c, Account(**OWNER_A), Account(**OWNER_B)])
    db.add(Account(id="owner-c", email="owner.c@curlbar.com", role="owner"))
    db.flush()
    db.add(StaffMember(tenant_id=tenant_a.id, pos_team_member_id="TM-99", display_name="Uma"))
    db.add(Account(id="staff-meta", email="lee@glowsalon.com", role="staff", tenant_id=tenant_b.id))
    db.add(Account(id="staff-roster", email="uma@glowsalon.com", role="staff", staff_id="TM-99"))
    db.add(Account(id="stranger", email="nobody@elsewhere.com", role="staff"))
    db.commit()
    db.close()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app = FastAPI()
    app.include_router(pos_proxy_router)
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_pos_client] = lambda: PosClient(
        base_url="https://pos.test", transport=httpx.MockTransport(handler)
    )
    return TestClient(app)


def _auth(account_id):
    return {"Authorization": f"Bearer {create_access_token(account_id)}"}


def _recording_handler(calls, response=None):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if response is not None:
            return response
        return httpx.Response(200, json={"locations": [{"id": "LOC-1"}]})

    return handler


def test_proxy_forwards_with_tenant_credential_and_version_header():
    calls = []
    client = _build_client(_recording_handler(calls))

    response = client.get(
        "/api/pos/proxy",
        params={"path": "/v2/locations", "limit": "5"},
        headers=_auth(OWNER_A["id"]),
    )

    assert response.status_code == 200
    assert response.json() == {"locations": [{"id": "LOC-1"}]}
    assert len(calls) == 1
    upstream = calls[0]
    assert upstream.url.path == "/v2/locations"
    assert upstream.url.params["limit"] == "5"
    assert "path" not in upstream.url.params
    assert upstream.headers["Authorization"] == f"Bearer {POS_TOKEN_A}"
    assert upstream.headers["Square-Version"]


def test_repeated_query_keys_are_forwarded_in_order():
    calls = []
    client = _build_client(_recording_handler(calls))

    response = client.get(
        "/api/pos/proxy",
        params=[("path", "/v2/catalog/list"), ("types", "ITEM"), ("types", "CATEGORY"), ("limit", "5")],
        headers=_auth(OWNER_A["id"]),
    )

    assert response.status_code == 200
    upstream = calls[0].url.params
    assert upstream.get_list("types") == ["ITEM", "CATEGORY"]
    assert upstream["limit"] == "5"
    assert "path" not in upstream


def test_each_owner_gets_their_own_credential():
    calls = []
    client = _build_client(_recording_handler(calls))

    client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth(OWNER_A["id"]))
    client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth(OWNER_B["id"]))

    assert [call.headers["Authorization"] for call in calls] == [
        f"Bearer {POS_TOKEN_A}",
        f"Bearer {POS_TOKEN_B}",
    ]


def test_proxy_passes_upstream_errors_through_unchanged():
    error_body = {"errors": [{"category": "INVALID_REQUEST_ERROR", "code": "NOT_FOUND"}]}
    client = _build_client(_recording_handler([], httpx.Response(404, json=error_body)))

    response = client.get("/api/pos/proxy", params={"path": "/v2/customers/NOPE"}, headers=_auth(OWNER_A["id"]))

    assert response.status_code == 404
    assert response.json() == error_body


def test_proxy_forwards_post_body_verbatim():
    calls = []
    client = _build_client(_recording_handler(calls, httpx.Response(200, json={"customer": {"id": "C-9"}})))
    payload = {"given_name": "Maria", "email_address": "maria@clients.com"}

    response = client.post(
        "/api/pos/proxy",
        params={"path": "/v2/customers"},
        content=json.dumps(payload),
        headers={**_auth(OWNER_A["id"]), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert calls[0].method == "POST"
    assert json.loads(calls[0].content) == payload
    assert calls[0].headers["Content-Type"] == "application/json"


def test_proxy_wraps_non_json_upstream_body():
    client = _build_client(_recording_handler([], httpx.Response(502, text="Bad Gateway")))

    response = client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth(OWNER_A["id"]))

    assert response.status_code == 502
    assert response.json() == {"raw": "Bad Gateway"}


def test_proxy_returns_empty_response_for_no_content():
    client = _build_client(_recording_handler([], httpx.Response(204)))

    response = client.delete("/api/pos/proxy", params={"path": "/v2/customers/C-1"}, headers=_auth(OWNER_A["id"]))

    assert response.status_code == 204
    assert response.content == b""


def test_staff_resolve_through_metadata_and_roster():
    calls = []
    client = _build_client(_recording_handler(calls))

    by_metadata = client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth("staff-meta"))
    by_roster = client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth("staff-roster"))

    assert by_metadata.status_code == 200
    assert by_roster.status_code == 200
    assert calls[0].headers["Authorization"] == f"Bearer {POS_TOKEN_B}"
    assert calls[1].headers["Authorization"] == f"Bearer {POS_TOKEN_A}"


def test_unresolved_caller_gets_401_without_upstream_call():
    calls = []
    client = _build_client(_recording_handler(calls))

    response = client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth("stranger"))

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "UNRESOLVED_TENANT"
    assert calls == []


def test_tenant_without_credential_gets_401_no_pos_credential():
    calls = []
    client = _build_client(_recording_handler(calls))

    response = client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth("owner-c"))

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "NO_POS_CREDENTIAL"
    assert calls == []


def test_missing_bearer_token_is_rejected():
    calls = []
    client = _build_client(_recording_handler(calls))

    response = client.get("/api/pos/proxy", params={"path": "/v2/locations"})

    assert response.status_code == 401
    assert calls == []


def test_absolute_or_protocol_relative_paths_are_refused():
    calls = []
    client = _build_client(_recording_handler(calls))

    for bad_path in ("//evil.example.com/v2", "https://evil.example.com/v2", "v2/locations"):
        response = client.get("/api/pos/proxy", params={"path": bad_path}, headers=_auth(OWNER_A["id"]))
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_PATH"

    assert calls == []


def test_transport_failure_maps_to_502():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _build_client(handler)

    response = client.get("/api/pos/proxy", params={"path": "/v2/locations"}, headers=_auth(OWNER_A["id"]))

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "UPSTREAM_ERROR"
