"""Declarative base and portable column types."""

from __future__ import annotations

from sqlalchemy import JSON, BigInteger, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase

# PostgreSQL in production, SQLite for tests and local runs.
GUID = UUID(as_uuid=False).with_variant(String(36), "sqlite")
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONDocument = JSONB().with_variant(JSON(), "sqlite")


class Base(DeclarativeBase):
    """Base class for ORM models."""
