from __future__ import annotations

from enum import IntEnum

from errors import ConfigError


class Committee(IntEnum):
    BAGGING = 1
    BOOSTING = 2
    RANDOM_FOREST = 3

    @property
    def display_name(self) -> str:
        if self is Committee.BAGGING:
            return "Bagging"
        if self is Committee.BOOSTING:
            return "Boosting"
        return "RandomForest"

    @property
    def resamples(self) -> bool:
        return self is not Committee.BOOSTING

    @classmethod
    def from_id(cls, value: int) -> "Committee":
        try:
            return cls(int(value))
        except ValueError as e:
            raise ConfigError(f"Unknown committee type: {value}") from e
