from __future__ import annotations

from copy import deepcopy
from typing import Generic, TypeVar

T = TypeVar("T")


class ValueStore(Generic[T]):
    """
    Holds the current value behind a single reference.

    Reads are a plain attribute load and never take a lock; ``store`` is a
    single reference assignment, so a reader sees either the previous or the
    new value in full.
    """

    __slots__ = ("_value", "_copy_on_read")

    def __init__(self, initial: T, *, copy_on_read: bool = True) -> None:
        self._value = initial
        self._copy_on_read = copy_on_read

    def get(self) -> T:
        value = self._value
        if self._copy_on_read:
            return deepcopy(value)
        return value

    def peek(self) -> T:
        """Return the stored reference without copying (internal comparisons)."""
        return self._value

    def store(self, value: T) -> None:
        self._value = value
