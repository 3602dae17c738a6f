import sys
from pathlib import Path
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from main import create_app, db, User
from carfinance.auth import hash_password, issue_token

TEST_PASSWORD = "password123"


@pytest.fixture
def app(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("SECRET_KEY", "test-secret-key")
    monkeypatch.setenv("UPLOAD_FOLDER", str(tmp_path / "uploads"))
    monkeypatch.setenv("PER_IP_PER_MIN_LIMIT", "1000")
    monkeypatch.delenv("SKIP_CREATE_ALL", raising=False)
    monkeypatch.delenv("RENDER", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("SALES_EMAILS", raising=False)
    app = create_app()
    app.config.update(TESTING=True)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(email=None, role="user", first_name="Test", last_name="User"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        with app.app_context():
            user = User(
                email=email,
                password_hash=hash_password(TEST_PASSWORD),
                first_name=first_name,
                last_name=last_name,
                role=role,
            )
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


def _login(client, user_id):
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user_id)
        sess["_fresh"] = True
    return client


@pytest.fixture
def logged_in_client(app, client, make_user):
    user_id = make_user("tester@example.com")
    return _login(client, user_id), user_id


@pytest.fixture
def sales_client(app, make_user):
    user_id = make_user("sales@example.com", role="sales", first_name="Sally", last_name="Sales")
    return _login(app.test_client(), user_id), user_id


@pytest.fixture
def auth_headers(app):
    def _headers(user_id):
        with app.app_context():
            token = issue_token(db.session.get(User, user_id))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def login_as(app):
    """Fresh session-authenticated client for an existing user id."""
    def _client(user_id):
        return _login(app.test_client(), user_id)

    return _client
