"""
Tenant Registry - maps an opaque tenant key to connection parameters.

One isolated database per tenant. The master directory stores only the
database name and an optional host override; credentials and defaults
come from Settings.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from stationledger.core.config import Settings
from stationledger.domain.exceptions import LedgerInfrastructureError, UnknownTenantError
from stationledger.infrastructure.database import make_session_factory
from stationledger.infrastructure.database.models import TenantDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    username: str | None = None
    password: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ConnectionParams:
    """Where a tenant's database lives."""
    database_name: str
    driver: str = "postgresql+psycopg2"
    host: str | None = None
    port: int | None = None
    credentials: Credentials = field(default_factory=Credentials)

    def url(self) -> URL:
        """SQLAlchemy URL. For SQLite, database_name is the file path."""
        if self.driver.startswith("sqlite"):
            return URL.create(self.driver, database=self.database_name)
        return URL.create(
            self.driver,
            username=self.credentials.username,
            password=self.credentials.password,
            host=self.host,
            port=self.port,
            database=self.database_name,
        )


class TenantRegistry(ABC):

    @abstractmethod
    def lookup_connection(self, tenant_key: str) -> ConnectionParams:
        """Raise UnknownTenantError when the key has no active entry."""
        ...


class StaticTenantRegistry(TenantRegistry):
    """In-process registry for development and tests."""

    def __init__(self, tenants: Mapping[str, ConnectionParams] | None = None):
        self._tenants = dict(tenants or {})

    def add(self, tenant_key: str, params: ConnectionParams) -> None:
        self._tenants[tenant_key] = params

    def lookup_connection(self, tenant_key: str) -> ConnectionParams:
        try:
            return self._tenants[tenant_key]
        except KeyError:
            raise UnknownTenantError(tenant_key) from None


class DatabaseTenantRegistry(TenantRegistry):
    """Registry backed by the tenant_directory table of the master database."""

    def __init__(self, master_engine: Engine, settings: Settings):
        self._session_factory = make_session_factory(master_engine)
        self._settings = settings

    def lookup_connection(self, tenant_key: str) -> ConnectionParams:
        try:
            with self._session_factory() as db:
                entry = db.scalars(
                    select(TenantDirectory).where(TenantDirectory.tenant_key == tenant_key)
                ).first()
        except SQLAlchemyError as exc:
            logger.exception("Tenant directory lookup failed", extra={"tenant_key": tenant_key})
            raise LedgerInfrastructureError("lookup_connection", str(exc)) from exc

        if entry is None or not entry.is_active:
            raise UnknownTenantError(tenant_key)

        return self._params_for(entry)

    def register(
        self,
        tenant_key: str,
        db_name: str,
        db_host: str | None = None,
        db_port: int | None = None,
        notes: str | None = None,
    ) -> ConnectionParams:
        """Create or reactivate a directory entry."""
        with self._session_factory() as db:
            entry = db.scalars(
                select(TenantDirectory).where(TenantDirectory.tenant_key == tenant_key)
            ).first()
            if entry is None:
                entry = TenantDirectory(tenant_key=tenant_key, db_name=db_name)
                db.add(entry)
            entry.db_name = db_name
            entry.db_host = db_host
            entry.db_port = db_port
            entry.notes = notes
            entry.is_active = True
            entry.updated_at = datetime.now(timezone.utc)
            db.commit()
            db.refresh(entry)
            logger.info("Registered tenant", extra={"tenant_key": tenant_key, "db_name": db_name})
            return self._params_for(entry)

    def _params_for(self, entry: TenantDirectory) -> ConnectionParams:
        s = self._settings
        return ConnectionParams(
            database_name=entry.db_name,
            driver=s.TENANT_DB_DRIVER,
            host=entry.db_host or s.TENANT_DB_HOST,
            port=entry.db_port or s.TENANT_DB_PORT,
            credentials=Credentials(s.TENANT_DB_USER, s.TENANT_DB_PASSWORD),
        )
