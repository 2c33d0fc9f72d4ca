"""Ledger of webhook events that were already applied."""

from reftrack.logging_config import get_logger
from reftrack.storage.repo import ReferralStore

logger = get_logger(__name__)


class DedupLedger:
    """Answers "have we seen this event id before?".

    Events without an id are never recorded and never reported as seen.
    """

    def __init__(self, store: ReferralStore, source: str = "whop"):
        self.store = store
        self.source = source

    def has(self, event_id: str | None) -> bool:
        if not event_id:
            return False
        return self.store.has_processed_event(event_id)

    def mark(self, event_id: str | None, event_type: str = "") -> bool:
        """Record an event id. Marking twice is a no-op.

        Returns:
            True if this call recorded it first
        """
        if not event_id:
            return False
        inserted = self.store.mark_processed_event(event_id, event_type, source=self.source)
        if not inserted:
            logger.info("webhook_event_already_marked", event_id=event_id)
        return inserted
