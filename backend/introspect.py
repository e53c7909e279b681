"""Read source views: their names, their columns and their literal rows."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import InvalidIdentifier, SourceViewUnavailable
from inference import SourceField, extract_source_field

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: Optional[str]) -> str:
    """Return ``name`` if it is a plain SQL identifier, else raise InvalidIdentifier."""
    if not name or not IDENTIFIER_PATTERN.match(name):
        raise InvalidIdentifier(name or "")
    return name


def _qualified(db: Session, view_name: str, schema: Optional[str]) -> str:
    preparer = db.get_bind().dialect.identifier_preparer
    target = preparer.quote_identifier(validate_identifier(view_name))
    if schema:
        target = f"{preparer.quote_identifier(validate_identifier(schema))}.{target}"
    return target


def fetch_view_rows(db: Session, view_name: str, schema: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return every row of ``view_name`` as a plain dict.

    Raises:
        InvalidIdentifier: view or schema name is not a plain identifier.
        SourceViewUnavailable: the view could not be queried.
    """
    target = _qualified(db, view_name, schema)
    try:
        result = db.execute(text(f"SELECT * FROM {target}"))
        return [dict(r) for r in result.mappings().all()]
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Source view read failed", extra={"view": view_name, "error": str(e)})
        raise SourceViewUnavailable(view_name, str(e).splitlines()[0]) from e


def fetch_source_fields(db: Session, view_name: str, schema: Optional[str] = None) -> List[SourceField]:
    rows = fetch_view_rows(db, view_name, schema)
    return [extract_source_field(row, i) for i, row in enumerate(rows)]


def try_fetch_source_fields(db: Session, view_name: Optional[str],
                            schema: Optional[str] = None) -> Optional[List[SourceField]]:
    """Like fetch_source_fields, but ``None`` when the view is missing or unreadable."""
    if not view_name:
        return None
    try:
        return fetch_source_fields(db, view_name, schema)
    except (InvalidIdentifier, SourceViewUnavailable):
        return None


def list_views(db: Session, schema: Optional[str] = None) -> List[Dict[str, Optional[str]]]:
    names = inspect(db.get_bind()).get_view_names(schema=schema)
    return [
        {"name": n, "schema": schema, "fullName": f"{schema}.{n}" if schema else n}
        for n in sorted(names)
    ]


def list_view_columns(db: Session, view_name: str, schema: Optional[str] = None) -> List[Dict[str, Any]]:
    validate_identifier(view_name)
    try:
        columns = inspect(db.get_bind()).get_columns(view_name, schema=schema)
    except SQLAlchemyError as e:
        raise SourceViewUnavailable(view_name, str(e).splitlines()[0]) from e
    return [
        {
            "columnName": c["name"],
            "dataType": str(c["type"]),
            "isNullable": bool(c.get("nullable", True)),
            "defaultValue": c.get("default"),
            "ordinalPosition": i + 1,
        }
        for i, c in enumerate(columns)
    ]
