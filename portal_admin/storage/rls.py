"""Admin-scoped DB context helpers for PostgreSQL row level security."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session


ADMIN_CONTEXT_KEY = "admin_user_id"

_SET_ADMIN_SQL = text("SELECT set_config('app.current_admin_id', :admin_user_id, true)")


def set_admin_context(session: Session, admin_user_id: Optional[str]) -> None:
    """Expose the acting admin to RLS policies.

    The value is transaction-local in PostgreSQL, so it is re-applied at the start
    of every transaction the session opens. Services commit between saga steps.
    """

    session.info[ADMIN_CONTEXT_KEY] = admin_user_id or ""
    bind = session.get_bind()
    if bind is None or bind.dialect.name != "postgresql":
        return
    if session.in_transaction():
        session.execute(_SET_ADMIN_SQL, {"admin_user_id": admin_user_id or ""})


@event.listens_for(Session, "after_begin")
def _apply_admin_context(session: Session, transaction, connection: Connection) -> None:
    admin_user_id = session.info.get(ADMIN_CONTEXT_KEY)
    if admin_user_id is None or connection.dialect.name != "postgresql":
        return
    connection.execute(_SET_ADMIN_SQL, {"admin_user_id": admin_user_id})
