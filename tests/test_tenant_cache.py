from salonpos.services.tenant_cache import InMemoryTenantDataCache


class _Clock:
    def __init__(self) -> None:
        self.current = 1000.0

    def __call__(self) -> float:
        return self.current


def test_put_prunes_entries_of_sessions_that_never_came_back():
    clock = _Clock()
    cache = InMemoryTenantDataCache(ttl_seconds=60, clock=clock)
    cache.put(session_id="sid-abandoned-1", tenant_id=1, value={"clients": []})
    cache.put(session_id="sid-abandoned-2", tenant_id=2, value={"clients": []})

    clock.current += 61
    cache.put(session_id="sid-active", tenant_id=1, value={"clients": ["CUST-A"]})

    assert len(cache) == 1
    assert cache.get(session_id="sid-active", tenant_id=1) == {"clients": ["CUST-A"]}
    assert cache.invalidate_session("sid-abandoned-1") == 0


def test_fresh_entries_survive_a_put():
    clock = _Clock()
    cache = InMemoryTenantDataCache(ttl_seconds=60, clock=clock)
    cache.put(session_id="sid-1", tenant_id=1, value="first")

    clock.current += 30
    cache.put(session_id="sid-2", tenant_id=1, value="second")

    assert len(cache) == 2
    assert cache.get(session_id="sid-1", tenant_id=1) == "first"
    clock.current += 31
    assert cache.get(session_id="sid-1", tenant_id=1) is None
    assert cache.get(session_id="sid-2", tenant_id=1) == "second"
