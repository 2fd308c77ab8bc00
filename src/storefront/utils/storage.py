"""Persistence helpers over Protean repositories.

The engines treat storage as a collaborator that may fail. Domain-level
outcomes (missing aggregate, version conflict, invalid data) propagate
unchanged; anything else is re-raised as ``StorageError`` and never retried.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.errors import StorageError

logger = structlog.get_logger(__name__)

_PASSTHROUGH = (ObjectNotFoundError, ExpectedVersionError, ValidationError, StorageError)


@contextmanager
def _storage_errors(operation: str, aggregate: str) -> Iterator[None]:
    try:
        yield
    except _PASSTHROUGH:
        raise
    except Exception as exc:
        logger.error("Storage operation failed", operation=operation, aggregate=aggregate, error=str(exc))
        raise StorageError(f"{operation} {aggregate} failed: {exc}") from exc


def load(aggregate_cls, identifier):
    """Fetch one aggregate by id; raises ``ObjectNotFoundError`` when absent."""
    with _storage_errors("load", aggregate_cls.__name__):
        return current_domain.repository_for(aggregate_cls).get(identifier)


def find(aggregate_cls, **filters) -> list:
    """Return every aggregate matching the field filters."""
    with _storage_errors("find", aggregate_cls.__name__):
        query = current_domain.repository_for(aggregate_cls)._dao.query
        if filters:
            query = query.filter(**filters)
        return query.all().items


def exists(aggregate_cls, identifier) -> bool:
    try:
        load(aggregate_cls, identifier)
    except ObjectNotFoundError:
        return False
    return True


def save(*aggregates) -> None:
    """Persist one or more aggregates as a single unit of work."""
    names = ",".join(type(aggregate).__name__ for aggregate in aggregates)
    with _storage_errors("save", names):
        with UnitOfWork():
            for aggregate in aggregates:
                current_domain.repository_for(type(aggregate)).add(aggregate)
