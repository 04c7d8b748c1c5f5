"""
API dependencies - tenant resolution and per-request sessions.
"""

from collections.abc import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from stationledger.core.security import ActorContext, get_actor
from stationledger.infrastructure.tenancy.cache import TenantDomainCache


def get_tenant_cache(request: Request) -> TenantDomainCache:
    return request.app.state.tenant_cache


def get_db(
    actor: ActorContext = Depends(get_actor),
    cache: TenantDomainCache = Depends(get_tenant_cache),
) -> Generator[Session, None, None]:
    """Dependency - Get a session on the caller's tenant database."""
    domain = cache.resolve(actor.tenant_key)
    with domain.session() as db:
        yield db
