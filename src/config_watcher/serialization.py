from __future__ import annotations

import logging
from typing import Any, Generic, Protocol, TypeVar

from pydantic import PydanticUserError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError
from typing_extensions import runtime_checkable

from config_watcher.exceptions import ConfigSerializationError
from config_watcher.utils import _stable_serialize

logger = logging.getLogger("config_watcher.serialization")
logger.addHandler(logging.NullHandler())

T = TypeVar("T")

_ENCODE_ERRORS = (PydanticSerializationError, TypeError, ValueError)


@runtime_checkable
class SerializerProtocol(Protocol):
    def dumps(self, value: Any) -> bytes: ...

    def loads(self, data: bytes) -> Any: ...

    def canonical(self, value: Any) -> bytes: ...


class JsonSerializer(Generic[T]):
    """
    JSON codec for a configuration type, built on a pydantic ``TypeAdapter``.

    ``value_type`` drives decoding: dataclasses and pydantic models (nested),
    ``list``/``tuple``/``dict`` generics, ``Optional``, enums and plain JSON
    values. Decoding is strict (no string-to-number coercion, ``bool`` is not
    a number) except that an integer is accepted for a ``float``. Unknown
    object keys are ignored; missing fields take their defaults. ``dumps``
    keeps field order and indents for people editing the file; ``canonical``
    sorts keys and is what change detection compares.
    """

    def __init__(self, value_type: Any, *, indent: int = 2) -> None:
        self._value_type = value_type
        self._indent = indent
        try:
            self._adapter: TypeAdapter[T] = TypeAdapter(value_type)
        except PydanticUserError as exc:
            raise ConfigSerializationError(
                f"Unsupported config type {self._type_name()}: {exc}"
            ) from exc

    @property
    def value_type(self) -> Any:
        return self._value_type

    def dumps(self, value: T) -> bytes:
        try:
            return self._adapter.dump_json(value, indent=self._indent, warnings="error")
        except _ENCODE_ERRORS as exc:
            raise ConfigSerializationError(f"Cannot encode {type(value).__name__}: {exc}") from exc

    def canonical(self, value: T) -> bytes:
        try:
            plain = self._adapter.dump_python(value, mode="json", warnings="error")
            return _stable_serialize(plain)
        except _ENCODE_ERRORS as exc:
            raise ConfigSerializationError(f"Cannot encode {type(value).__name__}: {exc}") from exc

    def loads(self, data: bytes) -> T:
        try:
            return self._adapter.validate_json(data, strict=True)
        except ValidationError as exc:
            raise ConfigSerializationError(
                f"Cannot decode {self._type_name()}: {exc.error_count()} error(s): "
                f"{_first_error(exc)}"
            ) from exc

    def _type_name(self) -> str:
        return getattr(self._value_type, "__name__", repr(self._value_type))

    def __repr__(self) -> str:
        return f"<JsonSerializer type={self._type_name()} indent={self._indent}>"


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(p) for p in err.get("loc", ())) or "$"
    return f"{where}: {err.get('msg', 'invalid')}"


def values_equal(serializer: SerializerProtocol, a: Any, b: Any) -> bool:
    """
    Equality by canonical serialization. Values that cannot be canonicalised
    never compare equal, so a change is assumed.
    """
    try:
        return serializer.canonical(a) == serializer.canonical(b)
    except (ConfigSerializationError, TypeError, ValueError) as exc:
        logger.debug("Canonical comparison failed, treating values as different: %s", exc)
        return False
