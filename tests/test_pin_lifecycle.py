from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from salonpos.core.database import Base
from salonpos.models.account import Account
from salonpos.models.staff_member import STATUS_JOINED, STATUS_PENDING_PIN, StaffMember
from salonpos.models.tenant import Tenant
from salonpos.services.errors import (
    AccountConflict,
    ExpiredPin,
    InvalidPin,
    OwnerRequired,
    StaffNotFound,
    WeakPassword,
)
from salonpos.services.passwords import verify_password
from salonpos.services.pin_lifecycle import PinLifecycleManager
from salonpos.services.tenant_store import TenantStore
from tests.fixtures_data import OWNER_A, OWNER_B, POS_TOKEN_A, POS_TOKEN_B

ISSUED_AT = datetime(2024, 1, 1, 9, 0, 0)


class _Clock:
    def __init__(self, current: datetime) -> None:
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


def _session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _seed(db):
    tenant_a = Tenant(owner_user_id=OWNER_A["id"], pos_access_token=POS_TOKEN_A)
    tenant_b = Tenant(owner_user_id=OWNER_B["id"], pos_access_token=POS_TOKEN_B)
    db.add_all([tenant_a, tenant_b, Account(**OWNER_A), Account(**OWNER_B)])
    db.flush()
    db.add(StaffMember(tenant_id=tenant_a.id, pos_team_member_id="TM-7", display_name="Jo"))
    db.add(StaffMember(tenant_id=tenant_b.id, pos_team_member_id="TM-8", display_name="Kai"))
    db.commit()
    return tenant_a, tenant_b


def _owner(data):
    return SimpleNamespace(id=data["id"], tenant_id=None, staff_id=None)


def _manager(db, clock, codes=None):
    kwargs = {"now": clock}
    if codes is not None:
        kwargs["code_factory"] = lambda: next(codes)
    return PinLifecycleManager(db, **kwargs)


def test_generated_pin_can_be_verified_and_redeemed_once():
    db = _session()
    tenant_a, _tenant_b = _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821"]))

    issued = manager.generate(_owner(OWNER_A), "TM-7", email="jo@glowsalon.com")

    assert issued.code == "4821"
    assert issued.issued_at == ISSUED_AT
    assert issued.expires_at == ISSUED_AT + timedelta(hours=24)
    staff = TenantStore(db).get_staff("TM-7")
    assert staff.status == STATUS_PENDING_PIN

    preview = manager.verify("4821")
    assert preview == {
        "name": "Jo",
        "email": "jo@glowsalon.com",
        "staff_id": "TM-7",
        "expires_at": ISSUED_AT + timedelta(hours=24),
    }

    clock.advance(hours=1)
    result = manager.join("4821", "Jo@GlowSalon.com", "s3cretpass")

    assert result.created is True
    assert result.tenant_id == tenant_a.id
    assert result.account.email == "jo@glowsalon.com"
    assert result.account.role == "staff"
    assert result.account.staff_id == "TM-7"
    assert result.account.tenant_id == tenant_a.id
    assert result.account.level_id == "lvl_1"
    assert verify_password("s3cretpass", result.account.password_hash)
    assert result.staff.join_pin is None
    assert result.staff.pin_created_at is None
    assert result.staff.status == STATUS_JOINED
    assert result.staff.joined_at == ISSUED_AT + timedelta(hours=1)

    with pytest.raises(InvalidPin):
        manager.verify("4821")
    with pytest.raises(InvalidPin):
        manager.join("4821", "other@glowsalon.com", "s3cretpass")


def test_pin_is_live_until_ttl_and_expired_after():
    db = _session()
    _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821"]))
    manager.generate(_owner(OWNER_A), "TM-7")

    clock.advance(hours=23, minutes=59)
    assert manager.verify("4821")["staff_id"] == "TM-7"

    clock.advance(minutes=2)
    with pytest.raises(ExpiredPin):
        manager.verify("4821")
    with pytest.raises(ExpiredPin):
        manager.join("4821", "jo@glowsalon.com", "s3cretpass")

    assert TenantStore(db).get_account_by_email("jo@glowsalon.com") is None


def test_reissue_invalidates_previous_code():
    db = _session()
    _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821", "7310"]))

    manager.generate(_owner(OWNER_A), "TM-7")
    clock.advance(minutes=5)
    manager.generate(_owner(OWNER_A), "TM-7")

    with pytest.raises(InvalidPin):
        manager.verify("4821")
    assert manager.verify("7310")["staff_id"] == "TM-7"


def test_new_code_skips_codes_live_elsewhere():
    db = _session()
    _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821", "4821", "5555"]))

    first = manager.generate(_owner(OWNER_A), "TM-7")
    second = manager.generate(_owner(OWNER_B), "TM-8")

    assert first.code == "4821"
    assert second.code == "5555"


def test_expired_code_may_be_reused_by_another_tenant():
    db = _session()
    _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821", "4821"]))

    manager.generate(_owner(OWNER_A), "TM-7")
    clock.advance(hours=25)
    reused = manager.generate(_owner(OWNER_B), "TM-8")

    assert reused.code == "4821"
    assert manager.verify("4821")["staff_id"] == "TM-8"


def test_ambiguous_live_code_is_rejected():
    db = _session()
    _seed(db)
    store = TenantStore(db)
    store.store_pin(store.get_staff("TM-7"), "1234", ISSUED_AT)
    store.store_pin(store.get_staff("TM-8"), "1234", ISSUED_AT)
    db.commit()
    manager = _manager(db, _Clock(ISSUED_AT + timedelta(minutes=1)))

    with pytest.raises(InvalidPin):
        manager.verify("1234")
    with pytest.raises(InvalidPin):
        manager.join("1234", "jo@glowsalon.com", "s3cretpass")


@pytest.mark.parametrize("code", ["", "12", "12345", "abcd", None])
def test_malformed_code_is_invalid(code):
    db = _session()
    _seed(db)

    with pytest.raises(InvalidPin):
        _manager(db, _Clock(ISSUED_AT)).verify(code)


def test_consume_pin_only_succeeds_for_the_current_issuance():
    db = _session()
    _seed(db)
    store = TenantStore(db)
    staff = store.get_staff("TM-7")
    store.store_pin(staff, "4821", ISSUED_AT)
    db.commit()

    kwargs = {
        "staff_row_id": staff.id,
        "code": "4821",
        "issued_at": ISSUED_AT,
        "joined_at": ISSUED_AT + timedelta(minutes=1),
        "email": "jo@glowsalon.com",
    }
    assert store.consume_pin(**kwargs) is True
    assert store.consume_pin(**kwargs) is False


def test_join_that_loses_the_race_creates_no_account(monkeypatch):
    db = _session()
    _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821"]))
    manager.generate(_owner(OWNER_A), "TM-7")

    monkeypatch.setattr(manager.store, "consume_pin", lambda **_kwargs: False)

    with pytest.raises(InvalidPin):
        manager.join("4821", "jo@glowsalon.com", "s3cretpass")

    assert TenantStore(db).get_account_by_email("jo@glowsalon.com") is None


def test_concurrent_joins_on_one_pin_admit_exactly_one(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    first_db, second_db = factory(), factory()
    _seed(first_db)
    clock = _Clock(ISSUED_AT)
    first = _manager(first_db, clock, codes=iter(["4821"]))
    first.generate(_owner(OWNER_A), "TM-7")
    second = _manager(second_db, clock)

    real_consume = second.store.consume_pin

    def consume_after_other_join(**kwargs):
        first.join("4821", "jo@glowsalon.com", "s3cretpass")
        return real_consume(**kwargs)

    second.store.consume_pin = consume_after_other_join

    with pytest.raises(InvalidPin):
        second.join("4821", "kai@glowsalon.com", "an0therpass")

    check = factory()
    staff_accounts = check.query(Account).filter(Account.role == "staff").all()
    assert [account.email for account in staff_accounts] == ["jo@glowsalon.com"]
    assert check.query(StaffMember).filter(StaffMember.pos_team_member_id == "TM-7").one().status == STATUS_JOINED
    check.close()
    first_db.close()
    second_db.close()


def test_weak_password_keeps_pin_usable():
    db = _session()
    _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821"]))
    manager.generate(_owner(OWNER_A), "TM-7")

    with pytest.raises(WeakPassword):
        manager.join("4821", "jo@glowsalon.com", "short")

    assert manager.join("4821", "jo@glowsalon.com", "long-enough").created is True


def test_join_refuses_owner_email_and_keeps_pin():
    db = _session()
    _seed(db)
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821"]))
    manager.generate(_owner(OWNER_A), "TM-7")

    with pytest.raises(AccountConflict):
        manager.join("4821", OWNER_A["email"], "s3cretpass")

    staff = TenantStore(db).get_staff("TM-7")
    assert staff.join_pin == "4821"
    owner = TenantStore(db).get_account(OWNER_A["id"])
    assert owner.role == "owner"


def test_join_updates_existing_staff_account():
    db = _session()
    tenant_a, tenant_b = _seed(db)
    db.add(
        Account(
            email="jo@glowsalon.com",
            role="staff",
            tenant_id=tenant_b.id,
            staff_id="TM-OLD",
        )
    )
    db.commit()
    clock = _Clock(ISSUED_AT)
    manager = _manager(db, clock, codes=iter(["4821"]))
    manager.generate(_owner(OWNER_A), "TM-7")

    result = manager.join("4821", "jo@glowsalon.com", "s3cretpass")

    assert result.created is False
    assert result.account.tenant_id == tenant_a.id
    assert result.account.staff_id == "TM-7"
    assert db.query(Account).filter(Account.email == "jo@glowsalon.com").count() == 1


def test_generate_requires_owner():
    db = _session()
    tenant_a, _tenant_b = _seed(db)
    manager = _manager(db, _Clock(ISSUED_AT))

    with pytest.raises(OwnerRequired):
        manager.generate(SimpleNamespace(id="staff-1", tenant_id=tenant_a.id, staff_id="TM-7"), "TM-7")


def test_generate_refuses_staff_of_another_tenant():
    db = _session()
    _seed(db)
    manager = _manager(db, _Clock(ISSUED_AT))

    with pytest.raises(StaffNotFound):
        manager.generate(_owner(OWNER_A), "TM-8")

    assert TenantStore(db).get_staff("TM-8").join_pin is None


def test_generate_creates_invited_staff_row_when_missing():
    db = _session()
    tenant_a, _tenant_b = _seed(db)
    manager = _manager(db, _Clock(ISSUED_AT), codes=iter(["9001"]))

    manager.generate(_owner(OWNER_A), "invite-abc", display_name="New Hire", level_id="lvl_3")

    staff = TenantStore(db).get_staff("invite-abc")
    assert staff.tenant_id == tenant_a.id
    assert staff.source == "invite"
    assert staff.level_id == "lvl_3"
    assert staff.join_pin == "9001"
