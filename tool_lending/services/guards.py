from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from services.errors import ConflictError


logger = logging.getLogger("tool_lending.guards")


def compare_and_set_status(db: Session, model, key_column, key: int, expected_status: str, values: dict, label: str) -> None:
    """Update a row only while its Status still equals ``expected_status``.

    The caller that loses a race sees zero matched rows; the session is rolled
    back and a ConflictError is raised so no partial transition survives.
    """
    result = db.execute(
        update(model)
        .where(key_column == key)
        .where(model.Status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.warning("Conflict on %s id=%s expected_status=%s", label, key, expected_status)
        raise ConflictError(f"{label} {key} was modified concurrently; expected status '{expected_status}'.")
