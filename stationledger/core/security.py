"""
Security Core - Request actor context.

Authentication happens upstream; the gateway forwards the resolved tenant
and user as headers. The ledger only records who acted.
"""

from dataclasses import dataclass

from fastapi import Header

from stationledger.domain.exceptions import ValidationError

TENANT_HEADER = "X-Tenant-Key"
ACTOR_HEADER = "X-Actor-Id"
ACTOR_ID_MAX_LENGTH = 50


@dataclass(frozen=True)
class ActorContext:
    tenant_key: str
    actor_id: str | None = None


def get_actor(
    tenant_key: str | None = Header(None, alias=TENANT_HEADER),
    actor_id: str | None = Header(None, alias=ACTOR_HEADER),
) -> ActorContext:
    """Dependency - Build the actor context from gateway headers."""
    tenant_key = (tenant_key or "").strip()
    if not tenant_key:
        raise ValidationError(f"{TENANT_HEADER} header is required", field=TENANT_HEADER)

    actor_id = (actor_id or "").strip() or None
    if actor_id and len(actor_id) > ACTOR_ID_MAX_LENGTH:
        raise ValidationError(
            f"{ACTOR_HEADER} cannot exceed {ACTOR_ID_MAX_LENGTH} characters", field=ACTOR_HEADER
        )
    return ActorContext(tenant_key=tenant_key, actor_id=actor_id)
