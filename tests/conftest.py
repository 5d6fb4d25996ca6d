# tests/conftest.py

from io import BytesIO

import pytest
from werkzeug.datastructures import FileStorage

from app import create_app


@pytest.fixture()
def app(tmp_path):
    """App mot en tom databas och uploads-katalog per test."""
    app = create_app({
        "TESTING": True,
        "DATA_DIR": str(tmp_path / "data"),
        "UPLOADS_DIR": str(tmp_path / "uploads"),
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "data" / "tasks.db"),
    })
    yield app


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def uploads(app, tmp_path):
    return tmp_path / "uploads"


def make_file(name="photo.png", content_type="image/png", data=b"\x89PNG fake"):
    return FileStorage(stream=BytesIO(data), filename=name, content_type=content_type)


@pytest.fixture()
def upload_file():
    return make_file
