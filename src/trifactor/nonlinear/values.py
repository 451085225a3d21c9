from __future__ import annotations

from typing import Iterator

import numpy as np

from trifactor.errors import ValuesKeyDoesNotExist
from trifactor.keys import Key


class Values:
    """
    Variable store: maps integer keys to current estimates (numpy vectors).
    """

    def __init__(self, items: dict[Key, np.ndarray] | None = None) -> None:
        self._values: dict[Key, np.ndarray] = {}
        for key, value in (items or {}).items():
            self.insert(key, value)

    @staticmethod
    def _as_value(value: np.ndarray) -> np.ndarray:
        return np.asarray(value, dtype=np.float64).reshape(-1).copy()

    def insert(self, key: Key, value: np.ndarray) -> None:
        key = int(key)
        if key in self._values:
            raise ValueError(f"key {key} already exists in Values")
        self._values[key] = self._as_value(value)

    def update(self, key: Key, value: np.ndarray) -> None:
        key = int(key)
        if key not in self._values:
            raise ValuesKeyDoesNotExist(key)
        self._values[key] = self._as_value(value)

    def insert_or_assign(self, key: Key, value: np.ndarray) -> None:
        self._values[int(key)] = self._as_value(value)

    def at(self, key: Key) -> np.ndarray:
        try:
            return self._values[int(key)].copy()
        except KeyError:
            raise ValuesKeyDoesNotExist(key) from None

    def exists(self, key: Key) -> bool:
        return int(key) in self._values

    def keys(self) -> list[Key]:
        return sorted(self._values)

    def __contains__(self, key: object) -> bool:
        try:
            return int(key) in self._values  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Key]:
        return iter(self.keys())
