"""
Unit tests - Tenant domain cache and registries.
Testing: single-flight initialization, failure retry, isolation between keys.
"""

import threading
import time

import pytest
from sqlalchemy import select

from stationledger.domain.exceptions import TenantInitializationError, UnknownTenantError
from stationledger.infrastructure.database import SYSTEM_ACCOUNTS, align_master_schema, build_engine
from stationledger.infrastructure.database.models import LedgerAccount
from stationledger.infrastructure.tenancy.cache import DomainState, TenantDomainCache
from stationledger.infrastructure.tenancy.registry import (
    ConnectionParams,
    Credentials,
    DatabaseTenantRegistry,
    StaticTenantRegistry,
)

CALLERS = 12


class CountingEngineFactory:
    """Wraps build_engine, counting calls and optionally stalling or failing."""

    def __init__(self, delay: float = 0.0, fail_times: int = 0):
        self.delay = delay
        self.fail_times = fail_times
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, url, settings):
        with self._lock:
            self.calls += 1
            attempt = self.calls
        time.sleep(self.delay)
        if attempt <= self.fail_times:
            raise RuntimeError("tenant database unreachable")
        return build_engine(url, settings)


def resolve_concurrently(cache: TenantDomainCache, tenant_key: str, callers: int = CALLERS):
    barrier = threading.Barrier(callers)
    results: list = [None] * callers

    def worker(i: int) -> None:
        barrier.wait()
        try:
            results[i] = cache.resolve(tenant_key)
        except Exception as exc:  # collected for identity checks
            results[i] = exc

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(callers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


class TestSingleFlight:
    """Concurrent first-time resolves collapse into one initialization."""

    def test_concurrent_resolves_initialize_once(self, registry, settings):
        factory = CountingEngineFactory(delay=0.3)
        cache = TenantDomainCache(registry, settings, engine_factory=factory)
        try:
            results = resolve_concurrently(cache, "station-a")
            assert factory.calls == 1
            assert all(r is results[0] for r in results)
            assert results[0].state is DomainState.READY
        finally:
            cache.close()

    def test_concurrent_failures_share_one_error(self, registry, settings):
        factory = CountingEngineFactory(delay=0.3, fail_times=1)
        cache = TenantDomainCache(registry, settings, engine_factory=factory)
        try:
            results = resolve_concurrently(cache, "station-a")
            assert factory.calls == 1
            assert isinstance(results[0], TenantInitializationError)
            assert all(r is results[0] for r in results)
        finally:
            cache.close()

    def test_resolved_domain_is_reused(self, cache):
        assert cache.resolve("station-a") is cache.resolve("station-a")
        assert len(cache) == 1
        assert "station-a" in cache


class TestFailureHandling:
    """Failed initializations are reported and never cached."""

    def test_failure_not_cached_and_retry_succeeds(self, registry, settings):
        factory = CountingEngineFactory(fail_times=1)
        cache = TenantDomainCache(registry, settings, engine_factory=factory)
        try:
            with pytest.raises(TenantInitializationError, match="unreachable"):
                cache.resolve("station-a")
            assert cache.state("station-a") is DomainState.FAILED
            assert "station-a" not in cache

            domain = cache.resolve("station-a")
            assert domain.state is DomainState.READY
            assert cache.state("station-a") is DomainState.READY
            assert factory.calls == 2
        finally:
            cache.close()

    def test_unknown_tenant_is_not_wrapped(self, registry, settings):
        factory = CountingEngineFactory()
        cache = TenantDomainCache(registry, settings, engine_factory=factory)
        with pytest.raises(UnknownTenantError) as exc:
            cache.resolve("station-zz")
        assert exc.value.details["tenant_key"] == "station-zz"
        assert factory.calls == 0

    def test_missing_schema_without_alignment(self, registry, settings):
        settings = settings.model_copy(update={"ALIGN_SCHEMA": False})
        cache = TenantDomainCache(registry, settings)
        with pytest.raises(TenantInitializationError, match="schema"):
            cache.resolve("station-a")
        assert len(cache) == 0

    def test_unreachable_database(self, tmp_path, settings):
        registry = StaticTenantRegistry({
            "station-x": ConnectionParams(str(tmp_path / "missing" / "x.db"), driver="sqlite"),
        })
        cache = TenantDomainCache(registry, settings)
        with pytest.raises(TenantInitializationError):
            cache.resolve("station-x")
        assert cache.state("station-x") is DomainState.FAILED


class TestIsolation:
    """Different tenants never block or share each other's state."""

    def test_slow_tenant_does_not_block_another(self, registry, settings):
        release = threading.Event()

        def factory(url, s):
            if "station_a" in str(url):
                release.wait(timeout=10)
            return build_engine(url, s)

        cache = TenantDomainCache(registry, settings, engine_factory=factory)
        slow = threading.Thread(target=cache.resolve, args=("station-a",))
        slow.start()
        try:
            time.sleep(0.1)
            assert cache.state("station-a") is DomainState.INITIALIZING
            domain_b = cache.resolve("station-b")
            assert domain_b.state is DomainState.READY
            assert "station-a" not in cache
        finally:
            release.set()
            slow.join(timeout=10)
            cache.close()
        assert cache.state("station-a") is DomainState.UNINITIALIZED

    def test_each_tenant_seeded_separately(self, cache):
        for key in ("station-a", "station-b"):
            with cache.resolve(key).session() as db:
                names = set(db.scalars(select(LedgerAccount.name)).all())
            assert names == {name for name, _, _ in SYSTEM_ACCOUNTS}

    def test_evict_disposes_and_rebuilds(self, cache):
        first = cache.resolve("station-a")
        assert cache.evict("station-a") is True
        assert "station-a" not in cache
        assert cache.resolve("station-a") is not first
        assert cache.evict("station-unknown") is False


class TestDatabaseTenantRegistry:
    """Master-directory backed registry."""

    @pytest.fixture
    def master(self, settings):
        engine = build_engine(settings.MASTER_DATABASE_URL, settings)
        align_master_schema(engine)
        yield DatabaseTenantRegistry(engine, settings)
        engine.dispose()

    def test_register_and_lookup(self, master, tmp_path, settings):
        master.register("station-a", str(tmp_path / "a.db"), notes="Highway outlet")
        params = master.lookup_connection("station-a")
        assert params.database_name == str(tmp_path / "a.db")
        assert params.driver == "sqlite"
        assert params.credentials == Credentials(settings.TENANT_DB_USER, settings.TENANT_DB_PASSWORD)

    def test_unknown_key(self, master):
        with pytest.raises(UnknownTenantError):
            master.lookup_connection("nobody")

    def test_host_override_and_url(self, master):
        params = master.register("station-b", "station_b", db_host="db-2", db_port=5433)
        params = ConnectionParams(
            database_name=params.database_name,
            host=params.host,
            port=params.port,
            credentials=params.credentials,
        )
        url = params.url()
        assert (url.host, url.port, url.database) == ("db-2", 5433, "station_b")
        assert url.drivername == "postgresql+psycopg2"

    def test_credentials_hidden_from_repr(self):
        assert "s3cret" not in repr(Credentials("ledger", "s3cret"))
