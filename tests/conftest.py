"""
Practice Operations Test Configuration

Provides shared fixtures for async testing with:
- In-memory SQLite database
- Test client with async support
- In-memory S3 client for attachment uploads
- Authenticated user fixtures (admin, practice manager, principal, member, executive)
- Sample data factories for assignments, training entries and issues
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("NOTIFICATION_ENABLED", "false")
os.environ.setdefault("ENABLE_STRUCTURED_LOGGING", "false")

from datetime import date
from typing import AsyncGenerator, Dict, List
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.security import get_password_hash, create_access_token
from app.main import app
from app.models.user import User, UserRole
from app.models.assignment import (
    Assignment,
    SaAssignment,
    AssignmentStatus,
    PENDING_PRACTICE,
    join_names,
)
from app.models.training import TrainingCert
from app.models.issue import Issue, IssueStatus
from app.services.storage import FileStorage, get_file_storage


# Test database URL - SQLite in-memory with async support
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "testpassword123"


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create an async engine for testing with in-memory SQLite."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


class FakeS3Client:
    """Records put_object calls instead of talking to S3."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str):
        self.objects[Key] = Body
        return {"ETag": uuid.uuid4().hex}


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def file_storage(s3_client: FakeS3Client) -> FileStorage:
    return FileStorage(client=s3_client, bucket="test-bucket")


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, file_storage: FileStorage) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database and storage overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: file_storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# Data Factories
# -----------------------------------------------------------------------------

class UserFactory:
    """Factory for creating test users."""

    @staticmethod
    async def create(
        db: AsyncSession,
        email: str = None,
        name: str = None,
        role: UserRole = UserRole.PRACTICE_MEMBER,
        practices: List[str] = None,
        is_admin: bool = False,
        password: str = TEST_PASSWORD,
        is_active: bool = True
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"user-{uuid.uuid4().hex[:8]}@test.com",
            name=name or f"Test {role.value.replace('_', ' ').title()}",
            hashed_password=get_password_hash(password),
            role=role,
            practices=practices or [],
            is_admin=is_admin,
            is_active=is_active
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


class AssignmentFactory:
    """Factory for creating resource assignments in any workflow state."""

    @staticmethod
    async def create(
        db: AsyncSession,
        status: AssignmentStatus = AssignmentStatus.PENDING,
        practice: str = None,
        assignees: List[str] = None,
        customer_name: str = "Acme Health",
        project_number: str = None,
        am: str = "",
        region: str = "TX-DAL",
        request_date: str = None
    ) -> Assignment:
        result = await db.execute(Assignment.__table__.select())
        number = len(result.all()) + 1
        assignment = Assignment(
            id=str(uuid.uuid4()),
            assignment_number=number,
            status=status,
            practice=practice or (PENDING_PRACTICE if status == AssignmentStatus.PENDING else "Cloud"),
            project_number=project_number or f"PRJ-{uuid.uuid4().hex[:6].upper()}",
            customer_name=customer_name,
            am=am,
            region=region,
            request_date=request_date or date.today().isoformat(),
            resource_assigned=join_names(assignees or []),
            date_assigned=date.today().isoformat() if status == AssignmentStatus.ASSIGNED else "",
        )
        db.add(assignment)
        await db.commit()
        await db.refresh(assignment)
        return assignment


class SaAssignmentFactory:
    """Factory for creating SA assignments."""

    @staticmethod
    async def create(
        db: AsyncSession,
        status: AssignmentStatus = AssignmentStatus.PENDING,
        practice: str = None,
        assignees: List[str] = None,
        customer_name: str = "Globex",
        submitted_by: str = "isr@test.com"
    ) -> SaAssignment:
        result = await db.execute(SaAssignment.__table__.select())
        number = len(result.all()) + 1
        sa_assignment = SaAssignment(
            id=str(uuid.uuid4()),
            sa_assignment_number=number,
            status=status,
            practice=practice or (PENDING_PRACTICE if status == AssignmentStatus.PENDING else "Cloud"),
            customer_name=customer_name,
            opportunity_id=f"OPP-{number}",
            opportunity_name="Network refresh",
            region="TX-HOU",
            request_date=date.today().isoformat(),
            sa_assigned=join_names(assignees or []),
            date_assigned=date.today().isoformat() if status == AssignmentStatus.ASSIGNED else "",
            submitted_by=submitted_by,
        )
        db.add(sa_assignment)
        await db.commit()
        await db.refresh(sa_assignment)
        return sa_assignment


class TrainingCertFactory:
    """Factory for creating training entries."""

    @staticmethod
    async def create(
        db: AsyncSession,
        practice: str = "Cloud",
        vendor: str = "AWS",
        name: str = "Solutions Architect Associate",
        quantity_needed: int = 3,
        created_by: str = "admin@test.com"
    ) -> TrainingCert:
        entry = TrainingCert(
            id=str(uuid.uuid4()),
            practice=practice,
            type="Certification",
            vendor=vendor,
            name=name,
            quantity_needed=quantity_needed,
            created_by=created_by,
        )
        db.add(entry)
        await db.commit()
        await db.refresh(entry)
        return entry


class IssueFactory:
    """Factory for creating issues."""

    @staticmethod
    async def create(
        db: AsyncSession,
        email: str,
        title: str = "Export button missing",
        description: str = "The assignments table has no export option",
        issue_type: str = "Feature Request",
        status: IssueStatus = IssueStatus.OPEN
    ) -> Issue:
        result = await db.execute(Issue.__table__.select())
        issue = Issue(
            id=str(uuid.uuid4()),
            issue_number=len(result.all()) + 1,
            issue_type=issue_type,
            title=title,
            description=description,
            email=email,
            status=status,
        )
        db.add(issue)
        await db.commit()
        await db.refresh(issue)
        return issue


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await UserFactory.create(
        db_session,
        email="admin@test.com",
        name="Ada Admin",
        role=UserRole.PRACTICE_MANAGER,
        is_admin=True
    )


@pytest_asyncio.fixture
async def manager_user(db_session: AsyncSession) -> User:
    """Practice manager for Cloud only."""
    return await UserFactory.create(
        db_session,
        email="cloud.manager@test.com",
        name="Casey Cloud",
        role=UserRole.PRACTICE_MANAGER,
        practices=["Cloud"]
    )


@pytest_asyncio.fixture
async def principal_user(db_session: AsyncSession) -> User:
    """Practice principal for Network only."""
    return await UserFactory.create(
        db_session,
        email="network.principal@test.com",
        name="Noor Network",
        role=UserRole.PRACTICE_PRINCIPAL,
        practices=["Network"]
    )


@pytest_asyncio.fixture
async def member_user(db_session: AsyncSession) -> User:
    return await UserFactory.create(
        db_session,
        email="engineer@test.com",
        name="Riley Engineer",
        role=UserRole.PRACTICE_MEMBER,
        practices=["Cloud"]
    )


@pytest_asyncio.fixture
async def executive_user(db_session: AsyncSession) -> User:
    return await UserFactory.create(
        db_session,
        email="exec@test.com",
        name="Eve Executive",
        role=UserRole.EXECUTIVE
    )


def _token_for(user: User) -> str:
    return create_access_token({"sub": user.id, "email": user.email})


def _headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {_token_for(user)}"}


@pytest_asyncio.fixture
async def admin_token(admin_user: User) -> str:
    return _token_for(admin_user)


@pytest_asyncio.fixture
async def auth_headers_admin(admin_user: User) -> Dict[str, str]:
    return _headers(admin_user)


@pytest_asyncio.fixture
async def auth_headers_manager(manager_user: User) -> Dict[str, str]:
    return _headers(manager_user)


@pytest_asyncio.fixture
async def auth_headers_principal(principal_user: User) -> Dict[str, str]:
    return _headers(principal_user)


@pytest_asyncio.fixture
async def auth_headers_member(member_user: User) -> Dict[str, str]:
    return _headers(member_user)


@pytest_asyncio.fixture
async def auth_headers_executive(executive_user: User) -> Dict[str, str]:
    return _headers(executive_user)
