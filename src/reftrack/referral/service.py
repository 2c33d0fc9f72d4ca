"""Referral ledger: codes, attribution credits and reward bookkeeping."""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from reftrack.logging_config import get_logger
from reftrack.storage.models import ReferralUser
from reftrack.storage.repo import ReferralStore

logger = get_logger(__name__)


def build_referral_link(checkout_url: str | None, code: str) -> str | None:
    """Append ``ref=<code>`` to the configured checkout URL.

    An existing ``ref`` parameter is replaced; other parameters are kept.

    Returns:
        The link, or None when no usable checkout URL is configured
    """
    base = (checkout_url or "").strip()
    if not base:
        return None

    parts = urlsplit(base)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "ref"]
    query.append(("ref", code))
    return urlunsplit(parts._replace(query=urlencode(query)))


class ReferralLedger:
    """Maps codes to referrers and tracks each referrer's progress."""

    def __init__(self, store: ReferralStore):
        self.store = store

    def code_for(self, user_id: str) -> str:
        """Get the user's referral code, creating it on first request."""
        return self.store.get_or_create_code(str(user_id))

    def user_for(self, code: str | None) -> str | None:
        """Resolve a referral code to the referring user, if any."""
        if not code:
            return None
        return self.store.resolve_code(code)

    def credit(self, user_id: str) -> ReferralUser:
        """Credit one successful referral.

        Works for users never seen before: the record is created first.
        """
        return self.store.increment_referral(str(user_id))

    def reward(self, user_id: str) -> bool:
        """Mark the user rewarded.

        Returns:
            True only for the call that performed the transition
        """
        return self.store.set_rewarded(str(user_id))

    def progress(self, user_id: str) -> ReferralUser:
        """Current referral state for a user."""
        return self.store.get_or_create_user(str(user_id))
