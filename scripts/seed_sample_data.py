"""
Sample data seeding script for Practice Operations.
Creates regions, users for each role, assignments in every status and a few
training entries.
"""
import asyncio
import random
import sys
from datetime import date, timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal, create_all_tables
from app.core.security import get_password_hash
from app.models.user import User, UserRole
from app.models.assignment import Assignment, SaAssignment, AssignmentStatus, PENDING_PRACTICE
from app.models.training import TrainingCert
from app.models.reference import Region


ADMIN_EMAIL = "admin@example.com"
DEFAULT_PASSWORD = "changeme123"

REGION_CODES = [
    "CA-LAX", "CA-SAN", "CA-SFO", "FL-MIA", "FL-NORT", "KY-KENT", "LA-STATE",
    "OK-OKC", "OTHERS", "TN-TEN", "TX-CEN", "TX-DAL", "TX-HOU",
]

USERS_DATA = [
    {"email": ADMIN_EMAIL, "name": "Site Admin", "role": UserRole.EXECUTIVE, "is_admin": True, "practices": []},
    {"email": "cloud.manager@example.com", "name": "Casey Cloud", "role": UserRole.PRACTICE_MANAGER, "practices": ["Cloud"]},
    {"email": "network.principal@example.com", "name": "Noor Network", "role": UserRole.PRACTICE_PRINCIPAL, "practices": ["Network"]},
    {"email": "collab.manager@example.com", "name": "Cam Collab", "role": UserRole.PRACTICE_MANAGER, "practices": ["Collaboration", "Contact Center"]},
    {"email": "engineer1@example.com", "name": "Riley Engineer", "role": UserRole.PRACTICE_MEMBER, "practices": ["Cloud"]},
    {"email": "engineer2@example.com", "name": "Jordan Engineer", "role": UserRole.PRACTICE_MEMBER, "practices": ["Network"]},
    {"email": "am1@example.com", "name": "Alex Account", "role": UserRole.ACCOUNT_MANAGER, "practices": []},
    {"email": "isr1@example.com", "name": "Sam Sales", "role": UserRole.ISR, "practices": []},
]

CUSTOMERS = ["Acme Health", "Globex", "Initech", "Umbrella Logistics", "Stark Manufacturing", "Wayne Foods"]

TRAINING_DATA = [
    {"practice": "Cloud", "type": "Certification", "vendor": "AWS", "name": "Solutions Architect Associate", "code": "SAA-C03", "level": "Associate", "quantity_needed": 4},
    {"practice": "Cloud", "type": "Training", "vendor": "Microsoft", "name": "Azure Fundamentals", "code": "AZ-900", "level": "Fundamentals", "quantity_needed": 6},
    {"practice": "Network", "type": "Certification", "vendor": "Cisco", "name": "CCNP Enterprise", "code": "350-401", "level": "Professional", "quantity_needed": 2},
]


async def create_regions(db: AsyncSession):
    print("Creating regions...")
    for code in REGION_CODES:
        if await db.get(Region, code) is None:
            db.add(Region(code=code, name=code, active=True))
    await db.commit()
    print(f"✓ {len(REGION_CODES)} regions")


async def create_users(db: AsyncSession):
    print("\nCreating users...")
    users = []
    for data in USERS_DATA:
        result = await db.execute(select(User).where(User.email == data["email"]))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(hashed_password=get_password_hash(DEFAULT_PASSWORD), is_active=True, **data)
            db.add(user)
            print(f"✓ Created {data['role'].value} {data['email']}")
        users.append(user)
    await db.commit()
    return users


async def create_assignments(db: AsyncSession, num_assignments: int = 30):
    """Assignments spread over all three statuses, each one valid for its status."""
    print(f"\nCreating {num_assignments} assignments...")
    result = await db.execute(select(func.max(Assignment.assignment_number)))
    number = result.scalar() or 0
    engineers = {"Cloud": ["Riley Engineer"], "Network": ["Jordan Engineer"]}

    for i in range(num_assignments):
        number += 1
        status = random.choice(list(AssignmentStatus))
        practice = random.choice(list(engineers))
        request_date = date.today() - timedelta(days=random.randint(0, 60))

        assignment = Assignment(
            assignment_number=number,
            status=status,
            practice=PENDING_PRACTICE if status == AssignmentStatus.PENDING else practice,
            project_number=f"PRJ-{10000 + number}",
            customer_name=random.choice(CUSTOMERS),
            project_description="Sample delivery engagement",
            region=random.choice(REGION_CODES),
            am="Alex Account",
            pm="Pat Manager",
            request_date=request_date.isoformat(),
        )
        if status == AssignmentStatus.ASSIGNED:
            assignment.assignees = engineers[practice]
            assignment.date_assigned = (request_date + timedelta(days=2)).isoformat()
        db.add(assignment)

    result = await db.execute(select(func.max(SaAssignment.sa_assignment_number)))
    sa_number = (result.scalar() or 0) + 1
    db.add(SaAssignment(
        sa_assignment_number=sa_number,
        status=AssignmentStatus.PENDING,
        practice=PENDING_PRACTICE,
        customer_name=random.choice(CUSTOMERS),
        opportunity_id=f"OPP-{5000 + sa_number}",
        opportunity_name="Network refresh",
        region=random.choice(REGION_CODES),
        am="Alex Account",
        isr="Sam Sales",
        request_date=date.today().isoformat(),
        submitted_by="isr1@example.com",
    ))

    await db.commit()
    print(f"✓ Created {num_assignments} assignments and 1 SA assignment")


async def create_training(db: AsyncSession):
    print("\nCreating training entries...")
    for data in TRAINING_DATA:
        result = await db.execute(
            select(TrainingCert).where(TrainingCert.vendor == data["vendor"], TrainingCert.name == data["name"])
        )
        if result.scalar_one_or_none() is None:
            db.add(TrainingCert(created_by=ADMIN_EMAIL, created_by_name="Site Admin", **data))
    await db.commit()
    print(f"✓ {len(TRAINING_DATA)} training entries")


async def main():
    """Main seeding function."""
    print("=" * 60)
    print("Practice Operations - Sample Data Seeding Script")
    print("=" * 60)

    await create_all_tables()

    async with AsyncSessionLocal() as db:
        try:
            await create_regions(db)
            await create_users(db)
            await create_assignments(db)
            await create_training(db)

            print("\n" + "=" * 60)
            print("✓ Sample data seeding completed successfully!")
            print("=" * 60)
            print(f"\nLogin with any seeded email and password: {DEFAULT_PASSWORD}")

        except Exception as e:
            print(f"\n✗ Error during seeding: {str(e)}")
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main())
