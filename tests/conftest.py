import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import main
from auth import make_token
from database import create_document, ensure_indexes, get_db
from media import get_storage
from notifications import get_mailer
from ratelimit import ALL_LIMITERS
from schemas import Product
from seed import seed_admin


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_enquiry_email(self, enquiry):
        if self.fail:
            raise RuntimeError("SMTP connection refused")
        self.sent.append(enquiry)


class FakeStorage:
    def __init__(self):
        self.uploads = []
        self.fail = False

    def upload_file(self, path, key, content_type="image/jpeg"):
        if self.fail:
            raise RuntimeError("bucket unreachable")
        with open(path, "rb") as fh:
            self.uploads.append({"key": key, "body": fh.read(), "content_type": content_type})
        return f"https://cdn.example.com/{key}"


@pytest.fixture
def db():
    database = mongomock.MongoClient().catalogue_test
    ensure_indexes(database)
    return database


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(db, mailer, storage):
    main.app.dependency_overrides[get_db] = lambda: db
    main.app.dependency_overrides[get_mailer] = lambda: mailer
    main.app.dependency_overrides[get_storage] = lambda: storage
    for limiter in ALL_LIMITERS:
        limiter.reset()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    _id = seed_admin(db, "Admin", "s3cret-pass", full_name="System Admin")
    return db["admin"].find_one({"_id": ObjectId(_id)})


@pytest.fixture
def auth_headers(admin):
    return {"Authorization": f"Bearer {make_token(admin['_id'], admin['username'])}"}


@pytest.fixture
def add_product(db):
    def _add(**fields):
        fields.setdefault("title", "Linen Curtain")
        _id = create_document(db, "product", Product(**fields))
        return db["product"].find_one({"_id": ObjectId(_id)})
    return _add
