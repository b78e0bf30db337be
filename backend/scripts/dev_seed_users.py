from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timezone

from sqlalchemy import select

# Ensure the backend directory is in sys.path when executed directly.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from medreq.core.config import settings  # noqa: E402
from medreq.core.security import create_access_token  # noqa: E402
from medreq.db.session import SessionLocal  # noqa: E402
from medreq.models.enums import Department, Role  # noqa: E402
from medreq.models.user import User  # noqa: E402

# (email, name, role, department)
DEV_USERS = [
    ("lab@example.org", "Lab Admin", Role.LAB_ADMIN, Department.LAB),
    ("pharmacy@example.org", "Pharmacy Admin", Role.PHARMACY_ADMIN, Department.PHARMACY),
    ("chairman@example.org", settings.chairman_name, Role.APPROVER, Department.MANAGEMENT),
    ("auditor@example.org", settings.auditor_name, Role.APPROVER, Department.MANAGEMENT),
    ("accounts@example.org", "Accounts", Role.ACCOUNTS, Department.FINANCE),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def main() -> None:
    async with SessionLocal() as session:
        for email, name, role, department in DEV_USERS:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(
                    email=email,
                    name=name,
                    role=role,
                    department=department,
                    active=True,
                    created_at=_utcnow(),
                    updated_at=_utcnow(),
                )
                session.add(user)
                print("created user:", email)
            else:
                user.name = name
                user.role = role
                user.department = department
                user.active = True
                user.updated_at = _utcnow()
                print("updated user:", email)
        await session.commit()

        for email, *_ in DEV_USERS:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one()
            token, expires_at = create_access_token(subject=str(user.id), role=user.role.value)
            print(f"{user.name} ({user.role.value}) token, expires {expires_at.isoformat()}:\n  {token}")


if __name__ == "__main__":
    asyncio.run(main())
