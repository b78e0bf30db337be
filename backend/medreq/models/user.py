from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from medreq.db.base import Base
from medreq.models.enums import Department, Role, db_enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)

    # Display name; also the identity the named-approver gates match against.
    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    role: Mapped[Role] = mapped_column(db_enum(Role, 30), nullable=False, index=True)
    department: Mapped[Department] = mapped_column(db_enum(Department, 20), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
