"""Repository layer for referral state.

This is the persistence contract the webhook pipeline depends on. Every
method opens its own transaction; nothing is cached between calls.
"""

from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reftrack.logging_config import get_logger
from reftrack.referral.codes import generate_code
from reftrack.storage.db import Database
from reftrack.storage.models import ProcessedWebhookEvent, ReferralCode, ReferralUser

logger = get_logger(__name__)

# Dialects with a native INSERT .. ON CONFLICT DO NOTHING
_INSERT_IGNORE = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

MAX_CODE_ATTEMPTS = 10


class CodeGenerationError(Exception):
    """Raised when no unused referral code could be generated."""

    def __init__(self, user_id: str, attempts: int):
        self.user_id = user_id
        self.attempts = attempts
        super().__init__(f"Could not allocate a referral code for {user_id} after {attempts} attempts")


def _insert_if_absent(session: Session, model: type, **values: Any) -> bool:
    """Insert a row unless it conflicts with an existing key.

    Returns:
        True if this call inserted the row
    """
    dialect = session.get_bind().dialect.name
    insert_fn = _INSERT_IGNORE.get(dialect)
    if insert_fn is not None:
        stmt = insert_fn(model).values(**values).on_conflict_do_nothing()
        result = session.execute(stmt)
        return result.rowcount == 1

    try:
        with session.begin_nested():
            session.add(model(**values))
        return True
    except IntegrityError:
        return False


class ReferralStore:
    """Record store for users, referral codes and processed webhook events."""

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------ users

    def _ensure_user(self, session: Session, user_id: str) -> None:
        _insert_if_absent(
            session,
            ReferralUser,
            user_id=user_id,
            referral_count=0,
            rewarded=False,
        )

    def _load_user(self, session: Session, user_id: str) -> ReferralUser:
        return session.scalars(
            select(ReferralUser)
            .where(ReferralUser.user_id == user_id)
            .execution_options(populate_existing=True)
        ).one()

    def get_or_create_user(self, user_id: str) -> ReferralUser:
        """Get a user, creating a zeroed record on first reference."""
        with self.db.session() as session:
            self._ensure_user(session, user_id)
            return self._load_user(session, user_id)

    def get_user(self, user_id: str) -> ReferralUser | None:
        """Get a user without creating one."""
        with self.db.session() as session:
            return session.get(ReferralUser, user_id)

    def increment_referral(self, user_id: str) -> ReferralUser:
        """Add exactly one referral to a user (created if absent).

        Returns:
            Updated user
        """
        return self.add_referrals(user_id, 1)

    def add_referrals(self, user_id: str, count: int) -> ReferralUser:
        """Add ``count`` referrals to a user (created if absent)."""
        with self.db.session() as session:
            self._ensure_user(session, user_id)
            session.execute(
                update(ReferralUser)
                .where(ReferralUser.user_id == user_id)
                .values(referral_count=ReferralUser.referral_count + count)
            )
            user = self._load_user(session, user_id)

        logger.info(
            "referral_count_incremented",
            user_id=user_id,
            added=count,
            referral_count=user.referral_count,
        )
        return user

    def set_rewarded(self, user_id: str) -> bool:
        """Flip ``rewarded`` to True.

        Returns:
            True if this call performed the False -> True transition
        """
        with self.db.session() as session:
            self._ensure_user(session, user_id)
            result = session.execute(
                update(ReferralUser)
                .where(ReferralUser.user_id == user_id)
                .where(ReferralUser.rewarded.is_(False))
                .values(rewarded=True)
            )
            flipped = result.rowcount == 1

        if flipped:
            logger.info("user_marked_rewarded", user_id=user_id)
        return flipped

    def set_referrals(self, user_id: str, referrals: int, rewarded: bool) -> ReferralUser:
        """Overwrite a user's referral state (admin only)."""
        with self.db.session() as session:
            self._ensure_user(session, user_id)
            session.execute(
                update(ReferralUser)
                .where(ReferralUser.user_id == user_id)
                .values(referral_count=referrals, rewarded=rewarded)
            )
            user = self._load_user(session, user_id)

        logger.warning(
            "referral_state_overwritten",
            user_id=user_id,
            referral_count=referrals,
            rewarded=rewarded,
        )
        return user

    # ------------------------------------------------------------------ codes

    def get_or_create_code(
        self,
        user_id: str,
        generate: Callable[[str], str] = generate_code,
    ) -> str:
        """Return the user's referral code, creating it on first call.

        Args:
            user_id: Platform user id
            generate: Code factory (randomized)

        Returns:
            The user's code; repeat calls return the same code

        Raises:
            CodeGenerationError: If every generated code collided
        """
        with self.db.session() as session:
            self._ensure_user(session, user_id)

            existing = self._code_for_user(session, user_id)
            if existing:
                return existing

            for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
                code = generate(user_id)
                if _insert_if_absent(session, ReferralCode, code=code, user_id=user_id):
                    logger.info("referral_code_created", user_id=user_id, code=code)
                    return code

                # Either another request created this user's code concurrently,
                # or the random code belongs to someone else.
                existing = self._code_for_user(session, user_id)
                if existing:
                    return existing
                logger.warning("referral_code_collision", user_id=user_id, attempt=attempt)

        raise CodeGenerationError(user_id, MAX_CODE_ATTEMPTS)

    def _code_for_user(self, session: Session, user_id: str) -> str | None:
        return session.scalar(
            select(ReferralCode.code)
            .where(ReferralCode.user_id == user_id)
            .order_by(ReferralCode.created_at.asc())
            .limit(1)
        )

    def resolve_code(self, code: str) -> str | None:
        """Map a referral code to its owner's user id."""
        if not code:
            return None
        with self.db.session() as session:
            return session.scalar(
                select(ReferralCode.user_id).where(ReferralCode.code == code)
            )

    # ----------------------------------------------------------------- events

    def has_processed_event(self, event_id: str) -> bool:
        """Check if a webhook event has already been processed."""
        if not event_id:
            return False
        with self.db.session() as session:
            existing = session.scalar(
                select(ProcessedWebhookEvent.event_id).where(
                    ProcessedWebhookEvent.event_id == event_id
                )
            )
            return existing is not None

    def mark_processed_event(self, event_id: str, event_type: str = "", source: str = "whop") -> bool:
        """Mark a webhook event as processed.

        Returns:
            True if this call recorded the event, False if it was already there
        """
        if not event_id:
            return False
        with self.db.session() as session:
            return _insert_if_absent(
                session,
                ProcessedWebhookEvent,
                event_id=event_id,
                event_type=event_type[:100],
                source=source,
            )
