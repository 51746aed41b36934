import os

# Must be set before diagnexus.config.get_settings() is first called
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["STORAGE_RETRY_DELAY"] = "0"
os.environ["AWS_S3_BUCKET"] = "test-bucket"
os.environ["SEED_DEMO_DATA"] = "true"

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from diagnexus.auth import UserPrincipal
from diagnexus.config import Settings, get_settings
from diagnexus.database import Database
from diagnexus.main import create_app
from diagnexus.models.user import User
from diagnexus.seed import seed_demo_users
from diagnexus.services.storage_service import StorageService

get_settings.cache_clear()

ADMIN = ("alice@example.com", "admin123")
DOCTOR = ("smith@hospital.com", "docpass")
PATIENT = ("john.doe@example.com", "patientpass")


class FakeBody:
    def __init__(self, data: bytes):
        self._data = data

    def read(self) -> bytes:
        return self._data


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.put_calls = 0
        self.fail_puts = 0
        self.fail_gets = 0
        self.deleted: list[str] = []

    @staticmethod
    def _error(code: str, op: str) -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": code}}, op)

    def put_object(self, Bucket, Key, Body, ContentType, **kwargs):
        self.put_calls += 1
        if self.fail_puts:
            self.fail_puts -= 1
            raise self._error("SlowDown", "PutObject")
        self.objects[Key] = (bytes(Body), ContentType)
        return {"ETag": '"fake"'}

    def get_object(self, Bucket, Key):
        if self.fail_gets:
            self.fail_gets -= 1
            raise self._error("InternalError", "GetObject")
        if Key not in self.objects:
            raise self._error("NoSuchKey", "GetObject")
        data, content_type = self.objects[Key]
        return {"Body": FakeBody(data), "ContentType": content_type, "ContentLength": len(data)}

    def list_objects_v2(self, Bucket, Prefix="", MaxKeys=1000):
        keys = sorted(k for k in self.objects if k.startswith(Prefix))[:MaxKeys]
        return {"Contents": [{"Key": k} for k in keys], "KeyCount": len(keys)}

    def delete_object(self, Bucket, Key):
        self.deleted.append(Key)
        self.objects.pop(Key, None)
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'diagnexus.db'}")


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def storage(settings, s3):
    return StorageService(settings, client=s3)


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.create_all()
    await seed_demo_users(db)
    yield db
    await db.dispose()


@pytest.fixture
async def session(database):
    async with database.sessionmaker() as s:
        yield s


@pytest.fixture
def client(settings, storage):
    app = create_app(settings=settings, storage=storage)
    with TestClient(app) as c:
        yield c


async def principal_for(session, user_id: int) -> UserPrincipal:
    return UserPrincipal.from_user(await session.get(User, user_id))


def login(client, creds) -> dict:
    email, password = creds
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.headers['X-Auth-Token']}"}
