# fellowship/db/partial_update.py
from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel
from sqlalchemy import Update, update


def collect_changes(
    patch: BaseModel,
    column_map: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """
    Return ``{column_name: value}`` for the fields explicitly set on ``patch``.

    Fields the client omitted are skipped; fields explicitly set to ``None``
    are kept so a column can be cleared. ``column_map`` renames schema fields
    whose column name differs.
    """
    column_map = column_map or {}
    changes: dict[str, Any] = {}
    for field_name, value in patch.model_dump(exclude_unset=True).items():
        changes[column_map.get(field_name, field_name)] = value
    return changes


def compile_partial_update(
    model: type,
    row_id: Any,
    patch: BaseModel,
    column_map: Mapping[str, str] | None = None,
    extra_values: Mapping[str, Any] | None = None,
) -> Update | None:
    """
    Compile a typed partial update into a single parameterised UPDATE.

    Parameters
    ----------
    model:
        ORM class with an ``id`` primary key.
    row_id:
        Primary key of the row to update.
    patch:
        Pydantic model whose fields are all optional.
    column_map:
        Optional schema-field -> column-name mapping.
    extra_values:
        Derived values to write alongside the patch (e.g. ``updated_at``).

    Returns
    -------
    Update | None
        ``None`` when the patch sets nothing.
    """
    changes = collect_changes(patch, column_map)
    if not changes:
        return None

    unknown = [name for name in changes if name not in model.__table__.columns]
    if unknown:
        raise ValueError(f"Unknown column(s) for {model.__name__}: {', '.join(unknown)}")

    values = dict(changes)
    if extra_values:
        values.update(extra_values)

    return update(model).where(model.id == row_id).values(**values)
