"""
Common utilities and base schemas for API validation.

This module provides shared functionality used across all schema modules:
- CamelModel: base model exposing camelCase field names on the wire
- Envelope: the ``{success, data, message}`` response wrapper
- Helpers turning SQLAlchemy rows into plain dicts for flattened schemas
"""

from __future__ import annotations

from typing import Any, Dict, Generic, Mapping, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import inspect as sa_inspect

T = TypeVar("T")


class CamelModel(BaseModel):
    """
    Base schema with camelCase aliases.

    Accepts both camelCase and snake_case input, reads SQLAlchemy models via
    from_attributes, and serializes with camelCase keys.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(BaseModel, Generic[T]):
    """
    Standard response wrapper.

    Example:
        ```python
        {"success": true, "data": {...}, "message": "Schedule created successfully"}
        ```
    """

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


def metadata_field() -> Any:
    """
    Field for JSON ``metadata`` columns.

    The ORM attribute is ``extra_metadata`` (``metadata`` is reserved by
    SQLAlchemy), while the wire name stays ``metadata``.
    """
    return Field(
        default=None,
        validation_alias=AliasChoices("extra_metadata", "metadata"),
        serialization_alias="metadata",
    )


def row_to_dict(row: Any) -> Dict[str, Any]:
    """
    Column values of a SQLAlchemy model as a dict keyed by attribute name.

    Mappings are returned unchanged so the same validators accept already
    serialized payloads.

    Example:
        >>> row_to_dict({"id": 1})
        {'id': 1}
    """
    if row is None:
        return {}
    if isinstance(row, Mapping):
        return dict(row)
    mapper = sa_inspect(row).mapper
    return {attr.key: getattr(row, attr.key) for attr in mapper.column_attrs}


def is_orm_row(data: Any) -> bool:
    return hasattr(data, "__tablename__") or hasattr(data, "_sa_instance_state")


class DefinitionSummary(CamelModel):
    id: int
    curve_name: str
    market: str
    location: str
    units: Optional[str] = None
    battery_duration: Optional[str] = None
