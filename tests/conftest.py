import pytest
from fastapi.testclient import TestClient

from medscan.deps import get_ai_client
from medscan.main import build_app
from medscan.profiles import ProfileService
from medscan.storage import ContactStore, JsonFileStore, SessionStore
from tests.fakes import make_ai_client


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(str(tmp_path / "data.json"))


@pytest.fixture
def sessions(store):
    return SessionStore(store)


@pytest.fixture
def contacts(store):
    return ContactStore(store)


@pytest.fixture
def app(store):
    app = build_app(store=store, profiles=ProfileService(store, None))
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api(app):
    return TestClient(app)


@pytest.fixture
def use_ai(app):
    """Route every gateway call of the app through a fake client."""

    def _use(content=None, error=None):
        client = make_ai_client(content=content, error=error)
        app.dependency_overrides[get_ai_client] = lambda: client
        return client

    return _use
