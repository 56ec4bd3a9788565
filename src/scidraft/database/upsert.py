"""Session-keyed upserts using the database's native INSERT ... ON CONFLICT.

manual_templates, drafts and reports hold at most one row per session_id.
Writes go through upsert_by_session_id so that concurrent requests for the
same session converge on a single row instead of racing a lookup-then-insert.
"""

from typing import Iterable, Optional, Type

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from loguru import logger

from .models import utcnow


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_by_session_id(
    db: Session,
    model: Type,
    session_id: str,
    values: dict,
    update_columns: Optional[Iterable[str]] = None,
):
    """
    Insert a row for session_id, or update the existing one.

    Args:
        db: Database session
        model: ORM class with a unique session_id column
        session_id: Session identifier
        values: Column values to write
        update_columns: Columns to overwrite on conflict (defaults to all of values)

    Returns:
        The persisted ORM instance, refreshed from the database
    """
    dialect = db.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")

    row = dict(values)
    row["session_id"] = session_id
    row["updated_at"] = utcnow()

    columns = list(update_columns) if update_columns is not None else list(row)
    if "updated_at" not in columns:
        columns.append("updated_at")

    stmt = insert(model.__table__).values(**row)
    stmt = stmt.on_conflict_do_update(
        index_elements=["session_id"],
        set_={name: stmt.excluded[name] for name in columns if name != "session_id"},
    )
    db.execute(stmt)

    logger.debug(f"Upserted {model.__tablename__} row for session {session_id}")

    return (
        db.query(model)
        .filter(model.session_id == session_id)
        .populate_existing()
        .one()
    )
