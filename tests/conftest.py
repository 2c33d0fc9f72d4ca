"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite file and a Discord client whose HTTP calls are
recorded instead of sent.
"""
import base64
import hashlib
import hmac
import json
import os
from datetime import datetime, timezone

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from svix.webhooks import Webhook

os.environ.setdefault("ENV", "test")

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"reftrack-test-secret-0123456789!").decode()
ADMIN_KEY = "admin-test-key"
CHECKOUT_URL = "https://whop.com/checkout/plan_test"
GUILD_ID = "111111111111111111"
ROLE_ID = "222222222222222222"
CHANNEL_ID = "333333333333333333"
REFERRER_ID = "123456789012345678"

DISCORD_SIGNING_KEY = Ed25519PrivateKey.generate()
DISCORD_PUBLIC_KEY = DISCORD_SIGNING_KEY.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()


def sign_structured(body: bytes, msg_id: str = "msg_test_1", secret: str = WEBHOOK_SECRET) -> dict:
    """Standard Webhooks headers for ``body``."""
    now = datetime.now(timezone.utc)
    signature = Webhook(secret).sign(msg_id, now, body.decode("utf-8"))
    return {
        "webhook-id": msg_id,
        "webhook-timestamp": str(int(now.timestamp())),
        "webhook-signature": signature,
    }


def sign_legacy(body: bytes, timestamp: str = "1700000000", secret: str = WEBHOOK_SECRET, prefix: str = "v1,") -> dict:
    """Legacy HMAC headers for ``body``."""
    digest = hmac.new(secret.encode(), timestamp.encode() + b"." + body, hashlib.sha256).digest()
    return {
        "webhook-timestamp": timestamp,
        "webhook-signature": prefix + base64.b64encode(digest).decode(),
    }


def sign_interaction(body: bytes, timestamp: str = "1700000000") -> dict:
    """Discord interaction signature headers for ``body``."""
    signature = DISCORD_SIGNING_KEY.sign(timestamp.encode() + body).hex()
    return {"X-Signature-Ed25519": signature, "X-Signature-Timestamp": timestamp}


def paid_event(event_id: str | None, ref: str | None, event_type: str = "invoice.paid") -> bytes:
    event: dict = {"type": event_type, "data": {"object": "invoice", "metadata": {}}}
    if event_id:
        event["id"] = event_id
    if ref:
        event["data"]["metadata"]["ref"] = ref
    return json.dumps(event).encode()


class DiscordRecorder:
    """Records Discord REST calls; can be told to fail."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_status: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"message": "nope"})
        if request.method == "POST":
            return httpx.Response(200, json={"id": "999", "channel_id": CHANNEL_ID})
        if request.method == "PUT" and "/commands" in request.url.path:
            return httpx.Response(200, json=json.loads(request.content))
        return httpx.Response(204)

    def paths(self, method: str | None = None) -> list[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]


@pytest.fixture
def settings(tmp_path):
    from reftrack.settings import Settings

    return Settings(
        env="test",
        database_url=f"sqlite:///{tmp_path / 'reftrack_test.db'}",
        whop_webhook_secret=WEBHOOK_SECRET,
        whop_checkout_url=CHECKOUT_URL,
        admin_test_key=ADMIN_KEY,
        discord_token="bot-token",
        discord_public_key=DISCORD_PUBLIC_KEY,
        guild_id=GUILD_ID,
        reward_role_id=ROLE_ID,
        announce_channel_id=CHANNEL_ID,
    )


@pytest.fixture
def discord_recorder():
    return DiscordRecorder()


@pytest.fixture
def discord(discord_recorder):
    from reftrack.discord.client import DiscordClient

    return DiscordClient("bot-token", transport=httpx.MockTransport(discord_recorder))


@pytest.fixture
def db(settings):
    from reftrack.storage.db import Database

    database = Database(settings.database_url)
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def services(settings, db, discord):
    from reftrack.api.deps import build_services

    return build_services(settings, db=db, discord=discord)


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def api_client(settings, db, discord):
    from fastapi.testclient import TestClient

    from reftrack.api.main import create_app

    app = create_app(settings, db=db, discord=discord)
    with TestClient(app) as client:
        yield client
