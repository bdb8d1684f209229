import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SYNC_DEBOUNCE_SECONDS"] = "0"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest

from app import app as flask_app, sync_writer
from models import db


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield flask_app
    sync_writer.flush()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield
