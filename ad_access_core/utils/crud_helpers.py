"""
Generic read helpers shared by the stores and services.

Writes go through the owning service so they can apply lifecycle rules;
lookups are the same for every model and live here.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from ..exceptions import not_found

T = TypeVar("T")


def _apply_filters(query, model_class, filters: Optional[Dict[str, Any]]):
    for key, value in (filters or {}).items():
        if hasattr(model_class, key) and value is not None:
            query = query.filter(getattr(model_class, key) == value)
    return query


def get_record(session: Session, model_class: Type[T], filters: Dict[str, Any]) -> Optional[T]:
    """
    Generic get operation for any model.

    Args:
        session: Database session
        model_class: SQLAlchemy model class
        filters: Column equality filters; ``None`` values are ignored

    Returns:
        First matching record or None
    """
    return _apply_filters(session.query(model_class), model_class, filters).first()


def get_record_by_id(session: Session, model_class: Type[T], record_id: str) -> Optional[T]:
    return session.get(model_class, record_id)


def require_record(session: Session, model_class: Type[T], record_id: str, **identifiers) -> T:
    """
    Get a record by id or raise a 404 RepositoryError.

    Args:
        session: Database session
        model_class: SQLAlchemy model class
        record_id: Primary key
        **identifiers: Names used in the not-found message (defaults to ``id``)
    """
    record = get_record_by_id(session, model_class, record_id)
    if record is None:
        raise not_found(model_class.__name__, **(identifiers or {"id": record_id}))
    return record


def list_records(
    session: Session,
    model_class: Type[T],
    filters: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    order_by: Optional[str] = None,
) -> List[T]:
    """
    Generic list operation for any model.

    Results are ordered by ``order_by`` when given, otherwise newest first.
    """
    query = _apply_filters(session.query(model_class), model_class, filters)

    if order_by and hasattr(model_class, order_by):
        query = query.order_by(getattr(model_class, order_by))
    elif hasattr(model_class, "created_at"):
        query = query.order_by(model_class.created_at.desc())  # type: ignore[attr-defined]

    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)

    return query.all()
