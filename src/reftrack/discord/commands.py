"""Slash commands served over Discord's HTTP interactions endpoint."""

from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from reftrack.logging_config import get_logger
from reftrack.referral.service import ReferralLedger, build_referral_link

logger = get_logger(__name__)

# Interaction types
PING = 1
APPLICATION_COMMAND = 2

# Interaction response types
PONG = 1
CHANNEL_MESSAGE_WITH_SOURCE = 4

EPHEMERAL = 1 << 6

COMMANDS: list[dict[str, Any]] = [
    {"name": "ref", "type": 1, "description": "Get your referral link / code"},
    {"name": "refstats", "type": 1, "description": "View your referral progress"},
]

ERROR_MESSAGE = "❌ Something went wrong. Try again."


def verify_interaction(public_key_hex: str, signature_hex: str, timestamp: str, raw_body: bytes) -> bool:
    """Check Discord's Ed25519 signature over ``timestamp + body``."""
    try:
        key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        key.verify(bytes.fromhex(signature_hex), timestamp.encode("utf-8") + raw_body)
    except (InvalidSignature, ValueError):
        return False
    return True


def interaction_user_id(payload: dict[str, Any]) -> str | None:
    """Invoking user's id (guild interactions nest it under ``member``)."""
    member = payload.get("member") or {}
    user = member.get("user") or payload.get("user") or {}
    user_id = user.get("id") if isinstance(user, dict) else None
    return str(user_id) if user_id else None


def _reply(content: str, ephemeral: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {"content": content, "allowed_mentions": {"parse": []}}
    if ephemeral:
        data["flags"] = EPHEMERAL
    return {"type": CHANNEL_MESSAGE_WITH_SOURCE, "data": data}


class CommandHandler:
    """Answers ``/ref`` and ``/refstats``."""

    def __init__(self, ledger: ReferralLedger, checkout_url: str | None, threshold: int = 3):
        self.ledger = ledger
        self.checkout_url = checkout_url
        self.threshold = threshold

    def ref(self, user_id: str) -> str:
        code = self.ledger.code_for(user_id)
        link = build_referral_link(self.checkout_url, code)
        if link:
            return f"🔗 <@{user_id}>'s referral link:\n{link}"
        return (
            f"🔗 <@{user_id}>'s referral code:\n`{code}`\n\n"
            "(Set WHOP_CHECKOUT_URL to show a full link.)"
        )

    def refstats(self, user_id: str) -> str:
        user = self.ledger.progress(user_id)
        return (
            "📈 **Referral Progress**\n"
            f"👤 <@{user_id}>\n"
            f"✅ **{user.referral_count or 0} / {self.threshold}** successful referrals"
        )

    def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Build the interaction response for a verified payload."""
        interaction_type = int(payload.get("type") or 0)
        if interaction_type == PING:
            return {"type": PONG}
        if interaction_type != APPLICATION_COMMAND:
            return _reply("Unsupported interaction type.", ephemeral=True)

        data = payload.get("data") or {}
        name = str(data.get("name") or "")
        user_id = interaction_user_id(payload)
        if not user_id:
            return _reply(ERROR_MESSAGE, ephemeral=True)

        try:
            if name == "ref":
                return _reply(self.ref(user_id))
            if name == "refstats":
                return _reply(self.refstats(user_id))
        except Exception as e:
            logger.error("interaction_command_failed", command=name, user_id=user_id, error=str(e))
            return _reply(ERROR_MESSAGE, ephemeral=True)

        return _reply(f"Unknown command: {name}", ephemeral=True)
