"""
Pydantic models ("schemas") for the data that flows through a check.

We keep these separate from the ORM models so the pipeline does not
depend on SQLAlchemy internals:

- Sample: one interface's raw counter readings at one point in time
- Missing / Unreadable: markers for counters the device did not answer
- Status: severity ladder used for checks, interfaces and the whole report
"""

from __future__ import annotations

import enum
from typing import Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class Status(enum.IntEnum):
    """
    Check severity, totally ordered for aggregation.

    The integer values double as Nagios plugin exit codes.
    """

    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3

    @classmethod
    def parse(cls, value: str) -> "Status":
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown status {value!r}") from None


class Missing(BaseModel):
    """The device reported noSuchObject / noSuchInstance for this slot."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["missing"] = "missing"

    def __str__(self) -> str:
        return "<missing>"


class Unreadable(BaseModel):
    """The device answered, but the value could not be parsed as a counter."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unreadable"] = "unreadable"
    raw: str

    def __str__(self) -> str:
        return f"<unreadable {self.raw!r}>"


MISSING = Missing()

# A raw reading is a counter/gauge, a text slot, or one of the two markers.
FieldValue = Union[int, str, Missing, Unreadable]


class Sample(BaseModel):
    """
    One interface's raw readings at one point in time.

    `index` is the join key between the current poll and the stored
    previous poll of the same interface.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(gt=0)
    timestamp: float
    fields: Dict[str, FieldValue] = Field(default_factory=dict)

    def get(self, key: str) -> FieldValue:
        """Return the raw value for `key`, or MISSING if it was never polled."""
        return self.fields.get(key, MISSING)

    def text(self, key: str) -> str:
        """Return a text slot as a string ("" when absent or not text)."""
        value = self.fields.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return str(value)
        return ""

    def counter(self, key: str) -> int | None:
        """Return the slot as a non-negative integer, or None."""
        value = self.fields.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        return None


# index -> Sample, one per poll
SampleCollection = Dict[int, Sample]
