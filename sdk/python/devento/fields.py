"""Tri-state fields for PATCH payloads.

An ``UpdateField`` is either unset (left out of the payload), explicitly
null (sent as JSON ``null``) or set to a value.
"""

from enum import Enum
from typing import Any, Dict, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")


class UpdateField(Generic[T]):
    __slots__ = ("_value", "_set")

    def __init__(self, value: Optional[T] = None, is_set: bool = False):
        self._value = value
        self._set = is_set

    @classmethod
    def of(cls, value: T) -> "UpdateField[T]":
        if value is None:
            raise ValueError("use UpdateField.null() for an explicit null")
        return cls(value, True)

    @classmethod
    def null(cls) -> "UpdateField[T]":
        return cls(None, True)

    @classmethod
    def unset(cls) -> "UpdateField[T]":
        return cls()

    @property
    def is_set(self) -> bool:
        return self._set

    @property
    def is_null(self) -> bool:
        return self._set and self._value is None

    @property
    def value(self) -> Optional[T]:
        """The stored value, or None when unset or null"""
        return self._value if self._set else None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UpdateField):
            return NotImplemented
        return self._set == other._set and self._value == other._value

    def __repr__(self) -> str:
        if not self._set:
            return "UpdateField.unset()"
        if self._value is None:
            return "UpdateField.null()"
        return f"UpdateField.of({self._value!r})"


def build_payload(fields: Mapping[str, UpdateField]) -> Dict[str, Any]:
    """Serialize update fields, omitting the unset ones"""
    payload: Dict[str, Any] = {}
    for name, update in fields.items():
        if not update.is_set:
            continue
        value = update.value
        if isinstance(value, Enum):
            value = value.value
        payload[name] = value
    return payload
