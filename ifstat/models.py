"""
SQLAlchemy ORM models for the persisted sample file.

- StoredInterface: one row per interface (ifIndex + capture timestamp)
- StoredField: one row per (interface, counter slot)

Values are stored as text with a kind tag. 64-bit counters do not fit
SQLite's signed INTEGER, and the missing/unreadable markers have to
survive the round trip.
"""

from sqlalchemy import Column, Float, ForeignKey, Integer, String, Text

from ifstat.database import Base

KIND_INT = "int"
KIND_TEXT = "text"
KIND_MISSING = "missing"
KIND_UNREADABLE = "unreadable"


class StoredInterface(Base):
    __tablename__ = "interfaces"

    if_index = Column(Integer, primary_key=True)

    # When the sample was taken (seconds since the epoch)
    ts = Column(Float, nullable=False)


class StoredField(Base):
    __tablename__ = "fields"

    id = Column(Integer, primary_key=True)

    if_index = Column(
        Integer,
        ForeignKey("interfaces.if_index"),
        index=True,
        nullable=False,
    )
    name = Column(String(64), nullable=False)

    kind = Column(String(16), nullable=False)
    value = Column(Text, nullable=True)  # NULL for the missing marker
