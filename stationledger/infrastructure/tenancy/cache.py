"""
Tenant Domain Cache - lazily builds and memoizes one data domain per tenant.

Concurrent first-time resolves of the same key collapse into a single
initialization (single-flight); every waiter receives that attempt's domain
or its exception. The map lock is held only to register or retire a flight,
never during I/O, so different tenants initialize independently.

Usage:
    cache = TenantDomainCache(registry, settings)
    domain = cache.resolve("station-042")
    with domain.session() as db:
        ...
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stationledger.core.config import Settings
from stationledger.domain.exceptions import (
    TenantInitializationError,
    UnknownTenantError,
)
from stationledger.infrastructure.database import (
    align_ledger_schema,
    build_engine,
    has_ledger_schema,
    make_session_factory,
    seed_system_accounts,
)
from stationledger.infrastructure.tenancy.registry import TenantRegistry

logger = logging.getLogger(__name__)

EngineFactory = Callable[[URL, Settings], Engine]


class DomainState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class TenantDomain:
    """One tenant's isolated data context."""
    tenant_key: str
    engine: Engine
    session_factory: sessionmaker[Session] | None = None
    state: DomainState = DomainState.INITIALIZING
    initialized_at: datetime | None = None

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a session on this tenant's database."""
        if self.state is not DomainState.READY or self.session_factory is None:
            raise TenantInitializationError(self.tenant_key, f"domain is {self.state.value}")
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()


class TenantDomainCache:
    """
    Process-wide map of tenant key -> ready TenantDomain.

    Failed initializations are never cached, so the next resolve retries.
    Healthy domains live until evict() or close().
    """

    def __init__(
        self,
        registry: TenantRegistry,
        settings: Settings,
        engine_factory: EngineFactory = build_engine,
    ):
        self._registry = registry
        self._settings = settings
        self._engine_factory = engine_factory
        self._lock = threading.Lock()
        self._domains: dict[str, TenantDomain] = {}
        self._flights: dict[str, Future] = {}
        self._failed: set[str] = set()

    def resolve(self, tenant_key: str) -> TenantDomain:
        domain = self._domains.get(tenant_key)
        if domain is not None:
            return domain

        with self._lock:
            domain = self._domains.get(tenant_key)
            if domain is not None:
                return domain
            flight = self._flights.get(tenant_key)
            leader = flight is None
            if leader:
                flight = Future()
                self._flights[tenant_key] = flight

        if not leader:
            # Re-raises the leader's exception instance on failure.
            return flight.result()

        try:
            domain = self._initialize(tenant_key)
        except (UnknownTenantError, TenantInitializationError) as exc:
            self._retire(tenant_key, flight, error=exc)
            raise
        except Exception as exc:
            error = TenantInitializationError(tenant_key, str(exc))
            self._retire(tenant_key, flight, error=error)
            raise error from exc
        except BaseException:
            self._retire(
                tenant_key, flight,
                error=TenantInitializationError(tenant_key, "initialization aborted"),
            )
            raise

        self._retire(tenant_key, flight, domain=domain)
        return domain

    def state(self, tenant_key: str) -> DomainState:
        with self._lock:
            if tenant_key in self._domains:
                return self._domains[tenant_key].state
            if tenant_key in self._flights:
                return DomainState.INITIALIZING
            if tenant_key in self._failed:
                return DomainState.FAILED
        return DomainState.UNINITIALIZED

    def evict(self, tenant_key: str) -> bool:
        """Drop a cached domain and dispose its engine. Returns False if absent."""
        with self._lock:
            domain = self._domains.pop(tenant_key, None)
            self._failed.discard(tenant_key)
        if domain is None:
            return False
        domain.engine.dispose()
        logger.info("Evicted tenant domain", extra={"tenant_key": tenant_key})
        return True

    def close(self) -> None:
        """Dispose every cached engine (process shutdown)."""
        with self._lock:
            domains = list(self._domains.values())
            self._domains.clear()
        for domain in domains:
            domain.engine.dispose()

    def __len__(self) -> int:
        return len(self._domains)

    def __contains__(self, tenant_key: object) -> bool:
        return tenant_key in self._domains

    def _retire(
        self,
        tenant_key: str,
        flight: Future,
        domain: TenantDomain | None = None,
        error: BaseException | None = None,
    ) -> None:
        with self._lock:
            if domain is not None:
                self._domains[tenant_key] = domain
                self._failed.discard(tenant_key)
            else:
                self._failed.add(tenant_key)
            self._flights.pop(tenant_key, None)
        if domain is not None:
            flight.set_result(domain)
        else:
            flight.set_exception(error)

    def _initialize(self, tenant_key: str) -> TenantDomain:
        started = time.perf_counter()
        logger.info("Initializing tenant domain", extra={"tenant_key": tenant_key})

        params = self._registry.lookup_connection(tenant_key)
        engine = self._engine_factory(params.url(), self._settings)
        domain = TenantDomain(tenant_key=tenant_key, engine=engine)

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            if self._settings.ALIGN_SCHEMA:
                align_ledger_schema(engine)
            elif not has_ledger_schema(engine):
                raise TenantInitializationError(
                    tenant_key, "ledger schema is missing and ALIGN_SCHEMA is disabled"
                )

            domain.session_factory = make_session_factory(engine)
            if self._settings.ALIGN_SCHEMA and self._settings.SEED_SYSTEM_ACCOUNTS:
                seed_system_accounts(domain.session_factory)
        except (SQLAlchemyError, TenantInitializationError) as exc:
            domain.state = DomainState.FAILED
            engine.dispose()
            logger.warning(
                "Tenant domain initialization failed",
                extra={"tenant_key": tenant_key, "reason": str(exc)},
            )
            if isinstance(exc, TenantInitializationError):
                raise
            raise TenantInitializationError(tenant_key, str(exc)) from exc
        except BaseException:
            domain.state = DomainState.FAILED
            engine.dispose()
            raise

        domain.state = DomainState.READY
        domain.initialized_at = datetime.now(timezone.utc)
        logger.info(
            "Tenant domain ready",
            extra={
                "tenant_key": tenant_key,
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return domain
