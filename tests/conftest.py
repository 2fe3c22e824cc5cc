"""Shared fixtures: an in-memory app per test, tokens and a small catalog."""
from types import SimpleNamespace

import pytest

from artshop.app import create_app
from artshop.db import main_session
from artshop.models import Product, Section

ARTIST_EMAIL = "artist@gallery.test"
ARTIST_PASSWORD = "brushstroke"


class FakeResponse:
    """Just enough of requests.Response for the HTTP fakes."""

    def __init__(self, status_code=200, json_data=None, content=b"", headers=None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}
        self.text = content.decode(errors="ignore") if content else str(json_data or "")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise RuntimeError(f"HTTP {self.status_code}")


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def signup(client, email, password="secret123", **extra):
    res = client.post("/signup", json=dict(email=email, password=password, **extra))
    assert res.status_code == 201, res.get_json()
    body = res.get_json()
    return SimpleNamespace(token=body["token"], id=body["user"]["id"], email=email,
                           headers=bearer(body["token"]))


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "DATABASE_URL": "sqlite://",
        "JWT_SECRET": "test-secret",
        "LOG_FILE": "",
        "ARTIST_EMAIL": ARTIST_EMAIL,
        "ARTIST_PASSWORD": ARTIST_PASSWORD,
        "FRONTEND_URL": "http://shop.test",
        "BACKEND_URL": "http://backend.test",
        "USE_GITHUB_STORAGE": True,
        "GITHUB_TOKEN": "ghp_test",
        "GITHUB_REPO_OWNER": "artist",
        "GITHUB_REPO_NAME": "gallery",
        "GITHUB_REPO_BRANCH": "main",
        "IMAGE_CACHE_DIR": str(tmp_path / "image-cache"),
        "STRIPE_SECRET_KEY": "sk_test_fake",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "SMTP_HOST": "",
        "TELEGRAM_BOT_TOKEN": "",
        "TELEGRAM_CHAT_ID": "",
        "SLACK_WEBHOOK_URL": "",
        "GOOGLE_CLIENT_ID": "",
        "GOOGLE_CLIENT_SECRET": "",
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def artist_headers(client):
    res = client.post("/adminlogin", json={"email": ARTIST_EMAIL, "password": ARTIST_PASSWORD})
    return bearer(res.get_json()["token"])


@pytest.fixture
def customer(client):
    return signup(client, "buyer@example.com", name="Asha", mobno="9876543210",
                  address="12 Lake Road, Pune")


@pytest.fixture
def other_customer(client):
    return signup(client, "other@example.com", name="Ravi")


@pytest.fixture
def catalog(app):
    """Paintings > Oil on Canvas (two products), Prints > Small (one product)."""
    with app.app_context(), main_session() as db:
        paintings = Section(name="Paintings", description="Original works")
        prints = Section(name="Prints")
        db.add_all([paintings, prints])
        db.flush()
        oil = Section(name="Oil on Canvas", parent_id=paintings.id, cover_image="sections/oil.jpg")
        small = Section(name="Small", parent_id=prints.id)
        db.add_all([oil, small])
        db.flush()
        harbour = Product(title="Monsoon Harbour", price_cents=150000, section_id=oil.id,
                          images=["products/harbour.jpg"], tags=["oil"])
        fields = Product(title="Evening Fields", price_cents=90000, section_id=oil.id, images=[])
        lotus = Product(title="Lotus Print", price_cents=25000, section_id=small.id, images=[])
        db.add_all([harbour, fields, lotus])
        db.commit()
        return SimpleNamespace(paintings=paintings.id, prints=prints.id, oil=oil.id, small=small.id,
                               harbour=harbour.id, fields=fields.id, lotus=lotus.id)
