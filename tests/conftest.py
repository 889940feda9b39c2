import io
import json
import uuid

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from unittest.mock import MagicMock

from reciguard.main import app
from reciguard.db import Base, get_db
from reciguard.deps import get_ai_client, get_store
from reciguard.errors import StorageError
from reciguard.models import User
from reciguard.services.recommendation import RecommendationClient

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # in-memory db must share one connection across sessions
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeImageStore:
    """In-memory image store. References look like the local store's."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self.fail_upload = False
        self.fail_delete = False

    def upload(self, data: bytes) -> str:
        if self.fail_upload:
            raise StorageError("upload refused")
        reference = f"/media/images/{uuid.uuid4()}.webp"
        self.objects[reference] = data
        self.uploaded.append(reference)
        return reference

    def delete(self, reference: str) -> None:
        if self.fail_delete:
            raise StorageError("delete refused")
        self.objects.pop(reference, None)
        self.deleted.append(reference)

    def seed(self, reference: str) -> str:
        self.objects[reference] = b"existing"
        return reference


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 40, 40)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
def ai_client():
    """AI model client that never leaves the process."""
    client = MagicMock(spec=RecommendationClient)
    client.similar_ingredients.return_value = []
    client.recommend.return_value = None
    return client


@pytest.fixture
def client(image_store, ai_client):
    """Test client with DB, image store and AI model overridden."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: image_store
    app.dependency_overrides[get_ai_client] = lambda: ai_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def user(db_session):
    u = User(username="chef")
    db_session.add(u)
    db_session.commit()
    db_session.refresh(u)
    return u


@pytest.fixture
def other_user(db_session):
    u = User(username="guest")
    db_session.add(u)
    db_session.commit()
    db_session.refresh(u)
    return u


@pytest.fixture
def headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def multipart():
    """Request kwargs for a create/edit call: form JSON plus optional image parts."""

    def build(form: dict, image: bytes = None, instruction_images: dict = None):
        files = []
        if image is not None:
            files.append(("image", ("main.png", image, "image/png")))
        for position, data in (instruction_images or {}).items():
            files.append((f"instruction_images[{position}]", (f"step{position}.png", data, "image/png")))
        return {"data": {"form": json.dumps(form)}, "files": files or None}

    return build


import fakeredis
from reciguard.infra import redis_client


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    redis_client._redis_sync = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield
    redis_client._redis_sync = None
