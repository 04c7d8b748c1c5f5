"""Transaction boundary shared by the ledger use cases."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stationledger.domain.exceptions import LedgerInfrastructureError

logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session, operation: str) -> Iterator[Session]:
    """
    Commit on success, roll back on any error.

    Store failures surface as LedgerInfrastructureError after rollback;
    ledger errors raised inside the block propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Ledger transaction failed",
            extra={"operation": operation, "reason": str(exc)},
        )
        raise LedgerInfrastructureError(operation, str(exc)) from exc
    except BaseException:
        db.rollback()
        raise
