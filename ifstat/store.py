"""
Previous-sample store.

The store holds the samples of the last successful poll so the next
invocation can compute deltas. Every save replaces the file in full:
a fresh database is written next to the target and renamed over it.

Callers must not run two checks against the same state file at once;
nothing here locks the file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ifstat.database import Base, make_engine, make_session_factory
from ifstat.errors import StorageError
from ifstat.models import (
    KIND_INT,
    KIND_MISSING,
    KIND_TEXT,
    KIND_UNREADABLE,
    StoredField,
    StoredInterface,
)
from ifstat.schemas import MISSING, FieldValue, Missing, Sample, SampleCollection, Unreadable

logger = logging.getLogger(__name__)


def encode_value(value: FieldValue) -> Tuple[str, Optional[str]]:
    if isinstance(value, Missing):
        return KIND_MISSING, None
    if isinstance(value, Unreadable):
        return KIND_UNREADABLE, value.raw
    if isinstance(value, int):
        return KIND_INT, str(value)
    if isinstance(value, str):
        return KIND_TEXT, value
    raise TypeError(f"cannot store field value {value!r}")


def decode_value(kind: str, value: Optional[str]) -> FieldValue:
    if kind == KIND_INT:
        return int(value)
    if kind == KIND_TEXT:
        return value or ""
    if kind == KIND_MISSING:
        return MISSING
    if kind == KIND_UNREADABLE:
        return Unreadable(raw=value or "")
    raise ValueError(f"unknown field kind {kind!r}")


class SampleStore:
    """Loads and saves a SampleCollection in one SQLite file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> Optional[SampleCollection]:
        """
        Return the stored samples, or None if there is no state file yet.

        Raises StorageError if the file exists but cannot be read.
        """
        if not self.path.exists():
            logger.info("No previous samples at %s", self.path)
            return None

        engine = make_engine(self.path)
        try:
            with make_session_factory(engine)() as db:
                interfaces = db.execute(select(StoredInterface)).scalars().all()
                rows = db.execute(select(StoredField)).scalars().all()

                fields: Dict[int, Dict[str, FieldValue]] = {}
                for row in rows:
                    fields.setdefault(row.if_index, {})[row.name] = decode_value(
                        row.kind, row.value
                    )

                collection: SampleCollection = {}
                for iface in interfaces:
                    collection[iface.if_index] = Sample(
                        index=iface.if_index,
                        timestamp=iface.ts,
                        fields=fields.get(iface.if_index, {}),
                    )
        except (SQLAlchemyError, ValueError) as exc:
            # ValueError also covers pydantic validation of the rebuilt samples
            raise StorageError(f"cannot read previous samples from {self.path}: {exc}") from exc
        finally:
            engine.dispose()

        logger.debug("Loaded %d previous samples from %s", len(collection), self.path)
        return collection

    def save(self, collection: SampleCollection) -> None:
        """Replace the state file with `collection`."""
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            os.close(fd)
        except OSError as exc:
            raise StorageError(f"cannot write samples to {self.path}: {exc}") from exc

        tmp_path = Path(tmp_name)
        engine = make_engine(tmp_path)
        try:
            Base.metadata.create_all(bind=engine)
            with make_session_factory(engine)() as db:
                db.add_all(self._rows(collection))
                db.commit()
            engine.dispose()
            os.replace(tmp_path, self.path)
        except (SQLAlchemyError, OSError, TypeError) as exc:
            engine.dispose()
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"cannot write samples to {self.path}: {exc}") from exc

        logger.debug("Saved %d samples to %s", len(collection), self.path)

    @staticmethod
    def _rows(collection: SampleCollection) -> List[object]:
        rows: List[object] = []
        for index, sample in sorted(collection.items()):
            rows.append(StoredInterface(if_index=index, ts=sample.timestamp))
            for name, value in sample.fields.items():
                kind, text = encode_value(value)
                rows.append(StoredField(if_index=index, name=name, kind=kind, value=text))
        return rows
