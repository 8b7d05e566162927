"""
Interface selection filters.

A filter is a comma-separated chain of items evaluated left to right.
Each item may start with "+" (include) or "-" (exclude); the flag
carries forward to the following items until another flag appears.

An item can name the field it matches:

- "name=Gi3/1"        exact, case-sensitive match
- "name=Gi3/1..Gi3/8" closed range, natural ordering ("Gi3/10" > "Gi3/9")
- "alias:uplink"      case-insensitive substring match

Without a field prefix the item is matched against the field (and mode)
that was last named, starting with an exact match on "name". A literal
comma inside a value is written as ",,".

"all", "+all" and "-all" turn the whole chain into include-all /
include-all / exclude-all.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ifstat.schemas import Sample

FIELDS = ("name", "description", "alias", "index", "type")

EXACT = "="
SUBSTRING = ":"

_ITEM_RE = re.compile(
    r"^(?P<flag>[+-])?"
    r"(?:(?P<field>" + "|".join(FIELDS) + r")(?P<mode>[=:]))?"
    r"(?P<value>.*)$",
    re.DOTALL,
)
_DIGITS_RE = re.compile(r"(\d+)")


def natural_key(text: str) -> Tuple:
    """
    Sort key splitting text into alternating non-digit and digit runs.

    Digit runs compare numerically, everything else lexicographically,
    so "Gi1/0/10" sorts after "Gi1/0/9".
    """
    parts = _DIGITS_RE.split(text)
    # re.split with a capture group always yields non-digit runs at even
    # positions and digit runs at odd positions
    return tuple(int(p) if i % 2 else p for i, p in enumerate(parts))


def split_items(spec: str) -> List[str]:
    """Split on single commas; a doubled comma is a literal comma."""
    items: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(spec):
        ch = spec[i]
        if ch == ",":
            if spec[i + 1:i + 2] == ",":
                current.append(",")
                i += 2
                continue
            items.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    items.append("".join(current))
    return items


def field_value(sample: Sample, field: str) -> str:
    if field == "index":
        return str(sample.index)
    return sample.text(field)


@dataclass(frozen=True)
class FilterItem:
    include: bool
    field: str
    mode: str
    value: str
    last: Optional[str] = None  # set for FIRST..LAST ranges

    def matches(self, candidate: str) -> bool:
        value = self.value
        if self.mode == SUBSTRING:
            candidate = candidate.lower()
            value = value.lower()

        if self.last is not None:
            last = self.last.lower() if self.mode == SUBSTRING else self.last
            key = natural_key(candidate)
            return natural_key(value) <= key <= natural_key(last)

        if self.mode == SUBSTRING:
            return value in candidate
        return candidate == value


@dataclass(frozen=True)
class FilterChain:
    """
    Ordered include/exclude items plus the default decision.

    `configured=False` is the "no filter given" chain, which includes
    everything. `constant` is set when an all/+all/-all token was used.
    """

    items: Tuple[FilterItem, ...] = ()
    default: bool = True
    constant: Optional[bool] = None
    configured: bool = False
    spec: Optional[str] = None

    @classmethod
    def parse(cls, spec: Optional[str]) -> "FilterChain":
        if spec is None:
            return cls()

        raw_items = split_items(spec)
        for raw in raw_items:
            token = raw.strip().lower()
            if token in ("all", "+all"):
                return cls(constant=True, configured=True, spec=spec)
            if token == "-all":
                return cls(constant=False, configured=True, spec=spec)

        include = True
        field = "name"
        mode = EXACT
        items: List[FilterItem] = []
        for raw in raw_items:
            match = _ITEM_RE.match(raw)
            if match.group("flag"):
                include = match.group("flag") == "+"
            if match.group("field"):
                field = match.group("field")
                mode = match.group("mode")

            value = match.group("value")
            last = None
            if ".." in value:
                value, last = value.split("..", 1)
            items.append(FilterItem(include, field, mode, value, last))

        # an exclude-first chain starts from "everything included"
        default = not items[0].include if items else True
        return cls(
            items=tuple(items),
            default=default,
            configured=True,
            spec=spec,
        )

    def evaluate(self, sample: Sample) -> bool:
        if not self.configured:
            return True
        if self.constant is not None:
            return self.constant

        included = self.default
        for item in self.items:
            if item.matches(field_value(sample, item.field)):
                included = item.include
        return included
