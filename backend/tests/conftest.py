"""Master test fixtures.

Environment variables are set BEFORE any application imports so that
``config.Settings()`` initialises with test-safe values and never
touches Docker secrets or a production database.
"""

import os, uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# ── Set test env vars before any app import ──────────────────────────
os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite://",
    "POSTGRES_PASSWORD": "testpassword",
    "SUPABASE_URL": "https://storage.test.example.com",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-role-key",
    "SUPABASE_JWT_SECRET": "test-jwt-secret-for-signing-tokens",
    "SUPABASE_STORAGE_BUCKET": "course-assets",
})
for _var in ("AI_PROVIDER", "QWEN_API_KEY", "DASHSCOPE_API_KEY", "GEMINI_API_KEY",
             "OPENAI_API_KEY"):
    os.environ.pop(_var, None)

import jwt
import pytest

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Now safe to import application code
from auth.jwt import ALGORITHM
from config import settings
from errors import StorageError
from models.base import Base, get_db, get_session_factory
from providers.base import Attachment, ExamProvider, Provider
from providers.registry import ProviderRegistry, get_provider_registry
from storage.object_store import StoredObject, get_object_store


# ── SQLite async engine ──────────────────────────────────────────────
_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
_TestSession = async_sessionmaker(_test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def _create_tables():
    """Create and drop SQLite tables around every test."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session():
    """Yield a test DB session."""
    async with _TestSession() as session:
        yield session


class FakeObjectStore:
    """In-memory stand-in for storage.ObjectStore."""

    def __init__(self):
        self.objects: dict[tuple[str, str], StoredObject] = {}
        self.ensured: list[str] = []
        self.uploads: list[str] = []
        self.fail_uploads = False
        self.fail_signing = False

    async def ensure_bucket(self, bucket, file_size_limit=None):
        self.ensured.append(bucket)

    async def upload(self, bucket, path, data, content_type):
        if self.fail_uploads:
            raise StorageError("storage unavailable")
        self.uploads.append(path)
        self.objects[(bucket, path)] = StoredObject(data=data, content_type=content_type)
        return path

    async def download(self, bucket, path):
        try:
            return self.objects[(bucket, path)]
        except KeyError:
            raise StorageError("Object not found")

    async def create_signed_url(self, bucket, path, expires_in):
        if self.fail_signing:
            raise StorageError("signing failed")
        return f"https://signed.example.com/{bucket}/{path}?expires={expires_in}"

    def put(self, path: str, data: bytes, content_type: str | None = "application/pdf"):
        self.objects[(settings.storage_bucket, path)] = StoredObject(data=data, content_type=content_type)


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def provider_registry() -> ProviderRegistry:
    return ProviderRegistry()


@pytest.fixture
async def test_client(db_session: AsyncSession, object_store, provider_registry):
    """HTTPX async client wired to the FastAPI app, with DB and service overrides.

    The startup event is NOT run; streamed jobs write through the test session.
    """
    from main import app

    async def _override_get_db():
        yield db_session

    @asynccontextmanager
    async def _shared_session():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: _shared_session
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_provider_registry] = lambda: provider_registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def make_token(user_id: uuid.UUID, **overrides) -> str:
    payload = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    payload.update(overrides)
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm=ALGORITHM)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    """Authorization header for the test user."""
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def token_factory():
    """Build signed access tokens: token_factory(user_id, **claim_overrides)."""
    return make_token


@pytest.fixture
async def submission(db_session: AsyncSession, object_store: FakeObjectStore, user_id: uuid.UUID):
    """A stored submission with one slide deck and one sample exam."""
    from materials.paths import serialize_storage_paths
    from models import CourseSubmission

    slide_path = f"{user_id}/slides/{uuid.uuid4()}-week1.pdf"
    sample_path = f"{user_id}/samples/{uuid.uuid4()}-midterm.pdf"
    object_store.put(slide_path, b"%PDF-1.4 slides")
    object_store.put(sample_path, b"%PDF-1.4 sample")
    record = CourseSubmission(
        owner_id=user_id,
        course_title="Linear Algebra",
        course_description="Vectors, matrices and eigenvalues",
        slides_storage_path=serialize_storage_paths([slide_path]),
        sample_storage_path=serialize_storage_paths([sample_path]),
    )
    db_session.add(record)
    await db_session.commit()
    return record


class ScriptedProvider(ExamProvider):
    """ExamProvider that yields canned fragments, or raises after them."""

    provider = Provider.GEMINI

    def __init__(self, fragments: list[str], error: Exception | None = None, model: str = "scripted-model"):
        super().__init__(model)
        self.fragments = fragments
        self.error = error
        self.calls: list[tuple[list[Attachment], object]] = []

    async def compose(self, attachments, prompt):
        self.calls.append((attachments, prompt))
        for fragment in self.fragments:
            yield fragment
        if self.error is not None:
            raise self.error


EXAM_MARKDOWN = """# Linear Algebra Mock Exam
- Duration: 90 minutes
- Total score: 100 points

## I. Single-choice questions (2 questions, 5 points each)
1. **Which matrix is invertible?**
   - A. The zero matrix
   - B. The identity matrix
   - C. A matrix with a zero row
   - D. None of the above

## II. Fill-in-the-blank questions
1. The determinant of a 2x2 identity matrix is ____.

## III. Computation questions
1. Compute `det(A)` for the matrix below.

| a | b |
|---|---|
| 1 | 2 |
| 3 | 4 |

## IV. Short-answer questions
1. Explain what an eigenvalue is.

```
Av = λv
```

## Answer key
### Single-choice questions
1. B, the identity matrix is its own inverse.
"""


@pytest.fixture
def scripted_provider():
    """Factory: scripted_provider(fragments, error=None) -> ScriptedProvider."""
    return ScriptedProvider


@pytest.fixture
def exam_markdown() -> str:
    return EXAM_MARKDOWN
