"""Verified write primitive shared by every mutating call.

Row-level security can discard an INSERT or UPDATE without raising: the
statement completes, nothing is written, and the caller believes the data
was saved. Every write in this package therefore goes through
``execute_verified`` which compares the driver-reported row count with the
number of rows the caller intended to touch.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence
import uuid

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import Session


class VerifiedWriteError(RuntimeError):
    """Raised when a write completes without affecting the expected rows."""

    def __init__(self, message: str, *, target: str, expected: Optional[int], affected: int) -> None:
        super().__init__(message)
        self.target = target
        self.expected = expected
        self.affected = affected


def execute_verified(
    session: Session,
    statement: Any,
    *,
    target: str,
    expected_rows: Optional[int],
) -> int:
    """Execute a DML statement and return the affected row count.

    ``expected_rows=None`` accepts any count; deletes go through
    ``delete_verified`` which supplies the expected count. Otherwise fewer
    affected rows than expected raises ``VerifiedWriteError``.
    """

    result = session.execute(statement)
    affected = int(result.rowcount)
    if expected_rows is None:
        return max(affected, 0)
    if affected < 0:
        raise VerifiedWriteError(
            f"write_unverifiable target={target}",
            target=target,
            expected=expected_rows,
            affected=affected,
        )
    if affected < expected_rows:
        if affected == 0:
            message = f"write_rejected_silently target={target} expected={expected_rows} affected=0"
        else:
            message = f"write_incomplete target={target} expected={expected_rows} affected={affected}"
        raise VerifiedWriteError(message, target=target, expected=expected_rows, affected=affected)
    return affected


def insert_verified(session: Session, model: Any, rows: Sequence[dict[str, Any]]) -> int:
    """Insert ``rows`` into the model's table and verify every row landed."""

    if not rows:
        return 0
    prepared = [{"id": str(uuid.uuid4()), **row} for row in rows]
    table = model.__table__
    statement = insert(table).values(prepared[0]) if len(prepared) == 1 else insert(table).values(prepared)
    return execute_verified(
        session,
        statement,
        target=table.name,
        expected_rows=len(prepared),
    )


def delete_verified(session: Session, model: Any, *criteria: Any) -> int:
    """Delete the rows matching ``criteria`` and verify every one of them went.

    The matching rows are counted first in the same transaction; a policy
    that hides the DELETE leaves the rows in place and raises here.
    """

    table = model.__table__
    existing = int(session.scalar(select(func.count()).select_from(table).where(*criteria)) or 0)
    if existing == 0:
        return 0
    return execute_verified(
        session,
        delete(table).where(*criteria),
        target=table.name,
        expected_rows=existing,
    )
