"""
Seed a Module Recruitment

Creates a demo module recruitment (with its quota ledger rows) so the TA
flows can be exercised locally. Safe to run repeatedly: an existing module
with the same code in the same series is reported and left untouched.

Usage:
    python scripts/seed_module_recruitment.py
"""

import asyncio
import sys
import uuid
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlalchemy import select

from ta_portal.core.database import async_session_maker, close_db
from ta_portal.modules.module_recruitments import repository
from ta_portal.modules.module_recruitments.models import ModuleRecruitment

RECRUITMENT_SERIES_ID = uuid.UUID("6f1d2c3b-0000-4000-8000-000000000001")
COORDINATOR_ID = uuid.UUID("6f1d2c3b-0000-4000-8000-0000000000c1")


async def seed_module_recruitment() -> None:
    """Create the demo module recruitment if it doesn't exist."""
    module_code = "CS3042"

    async with async_session_maker() as db:
        result = await db.execute(
            select(ModuleRecruitment).where(
                ModuleRecruitment.recruitment_series_id == RECRUITMENT_SERIES_ID,
                ModuleRecruitment.module_code == module_code,
            )
        )
        existing = result.scalar_one_or_none()

        if existing:
            print(f"Module recruitment already exists: {module_code}")
            print(f"  ID: {existing.id}")
            print(f"  Status: {existing.module_status.value}")
            return

        module = await repository.create(
            db,
            recruitment_series_id=RECRUITMENT_SERIES_ID,
            module_code=module_code,
            module_name="Database Systems",
            semester="5",
            year="2026",
            coordinators=[COORDINATOR_ID],
            required_undergraduates=2,
            required_postgraduates=1,
        )
        await db.commit()

        print("Module recruitment created successfully!")
        print(f"  Code: {module.module_code}")
        print(f"  ID: {module.id}")
        print(f"  Series: {module.recruitment_series_id}")
        print(f"  Coordinator: {COORDINATOR_ID}")
        for quota in module.quotas:
            print(f"  {quota.role.value}: required={quota.required}")

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed_module_recruitment())
