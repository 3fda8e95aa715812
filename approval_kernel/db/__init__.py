"""Database infrastructure: declarative base, column types and engine setup."""

from approval_kernel.db.base import Base, UTCDateTime, UUIDString

__all__ = ["Base", "UTCDateTime", "UUIDString"]
