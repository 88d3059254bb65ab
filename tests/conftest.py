import pytest
from fastapi.testclient import TestClient

from bridge.app import create_app
from bridge.database import CloudDatabase
from bridge.plugin import RecordStorePlugin
from recordstore import app as recordstore_app


@pytest.fixture
def store_client():
    for records in recordstore_app.databases.values():
        records.clear()
    return TestClient(recordstore_app.app)


@pytest.fixture
def database(store_client):
    db = CloudDatabase("http://testserver", session=store_client, max_workers=2)
    yield db
    db.close()


@pytest.fixture
def bridge_client(database):
    return TestClient(create_app(RecordStorePlugin(database)))
