import os
from uuid import uuid4

import mongomock
import pymongo
import pytest
from pymongo.errors import PyMongoError

from app import create_app


@pytest.fixture
def db():
    return mongomock.MongoClient()["plantNet-session"]


@pytest.fixture
def app(db):
    return create_app(
        {"TESTING": True, "JWT_SECRET_KEY": "test-secret", "DEPLOYMENT_MODE": "development"},
        db=db,
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return app.extensions["plantnet_store"]


@pytest.fixture
def auth_client(client):
    response = client.post("/jwt", json={"email": "buyer@example.com"})
    assert response.status_code == 200
    return client


@pytest.fixture
def mongo_db():
    """A scratch database on a real mongod, for aggregation stages mongomock lacks."""
    uri = os.getenv("MONGO_TEST_URI", "mongodb://localhost:27017")
    mongo_client = pymongo.MongoClient(uri, serverSelectionTimeoutMS=2000)
    try:
        mongo_client.admin.command("ping")
    except PyMongoError as exc:
        mongo_client.close()
        pytest.skip(f"MongoDB not reachable at {uri}: {exc}")

    name = f"plantnet_test_{uuid4().hex}"
    yield mongo_client[name]
    mongo_client.drop_database(name)
    mongo_client.close()
