"""Test fixtures: in-memory SQLite, moto-backed S3, fake mailer, API client."""

import boto3
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from moto import mock_aws
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clouddrive.database import get_db
from clouddrive.exceptions import EmailDeliveryError
from clouddrive.main import create_app
from clouddrive.models import Base, User
from clouddrive.security import create_access_token, hash_password
from clouddrive.services.blob_store import BlobStore

TEST_BUCKET = "clouddrive-test"


class RecordingMailer:
    """Stands in for Mailer; remembers what would have been sent."""

    def __init__(self):
        self.activations: list[tuple[str, str]] = []
        self.resets: list[tuple[str, str]] = []
        self.fail = False

    async def send_activation_email(self, to: str, token: str) -> None:
        if self.fail:
            raise EmailDeliveryError("SMTP down")
        self.activations.append((to, token))

    async def send_password_reset_email(self, to: str, token: str) -> None:
        if self.fail:
            raise EmailDeliveryError("SMTP down")
        self.resets.append((to, token))


@pytest_asyncio.fixture
async def db_session():
    """Provide an async in-memory SQLite session for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def s3():
    """Mocked S3 with the test bucket created."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=TEST_BUCKET)
        yield client


@pytest.fixture
def blob_store(s3):
    return BlobStore(s3, bucket=TEST_BUCKET, region="us-east-1")


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, blob_store: BlobStore, mailer: RecordingMailer):
    """Provide an async test client with overridden DB dependency and fake clients."""
    app = create_app(blob_store=blob_store, mailer=mailer)

    async def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def make_user(
    db: AsyncSession,
    email: str = "alice@example.com",
    password: str = "secret123",
    activated: bool = True,
) -> User:
    user = User(email=email, password_hash=hash_password(password), is_activated=activated)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    return await make_user(db_session)


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
