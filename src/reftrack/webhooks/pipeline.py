"""Attribution pipeline: raw webhook bytes to referral credit.

Every structurally valid payload is acknowledged with a 2xx so the provider
stops retrying; only bad signatures (401), unparseable bodies (400) and store
failures (500, via the caller) are non-2xx. Replays are absorbed by the dedup
ledger.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from starlette.concurrency import run_in_threadpool

from reftrack.logging_config import get_logger
from reftrack.referral.service import ReferralLedger
from reftrack.rewards.dispatcher import RewardDispatcher
from reftrack.webhooks.dedup import DedupLedger
from reftrack.webhooks.normalizer import classify
from reftrack.webhooks.signature import (
    HEADER_ID,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    SignatureVerifier,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)
    outcome: str = ""


def _ok(outcome: str, **extra: Any) -> WebhookResult:
    return WebhookResult(200, {"ok": True, **extra}, outcome)


class AttributionPipeline:
    """Verify, classify, dedupe and credit one inbound webhook."""

    def __init__(
        self,
        verifier: SignatureVerifier,
        dedup: DedupLedger,
        ledger: ReferralLedger,
        rewards: RewardDispatcher,
        debug: bool = False,
    ):
        self.verifier = verifier
        self.dedup = dedup
        self.ledger = ledger
        self.rewards = rewards
        self.debug = debug

    async def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        """Run one webhook delivery to a terminal response.

        Store calls run in the threadpool so the event loop keeps serving
        other requests. Store errors propagate; the HTTP layer turns them into
        a 500 so the provider retries.
        """
        if self.debug:
            sig = headers.get(HEADER_SIGNATURE)
            logger.info(
                "webhook_headers",
                webhook_id=headers.get(HEADER_ID),
                webhook_timestamp=headers.get(HEADER_TIMESTAMP),
                webhook_signature=f"{sig[:40]}..." if sig else None,
                has_secret=bool(self.verifier.secret),
            )

        # 1. Signature
        verification = self.verifier.verify(raw_body, headers)
        if not verification.ok:
            logger.warning("webhook_signature_rejected", reason=verification.reason)
            return WebhookResult(401, {"ok": False, "error": "invalid_signature"}, "rejected")

        # 2. Body
        try:
            event = json.loads(raw_body)
        except (ValueError, RecursionError):
            logger.warning("webhook_bad_json", size=len(raw_body))
            return WebhookResult(400, {"ok": False, "error": "bad_json"}, "bad_json")

        # 3. Classification
        normalized = classify(event)
        event_type = normalized.event_type
        event_id = normalized.event_id

        if self.debug:
            logger.info(
                "webhook_verified_event",
                strategy=verification.strategy,
                event_type=event_type,
                event_id=event_id,
                ref_code=normalized.ref_code,
            )

        if not normalized.is_paid:
            logger.info("webhook_ignored_type", event_type=event_type, event_id=event_id)
            return _ok("ignored", ignored=True, type=event_type)

        # 4. Dedup
        if await run_in_threadpool(self.dedup.has, event_id):
            logger.info("webhook_duplicate", event_id=event_id)
            return _ok("deduped", deduped=True)

        # 5. Referral code
        ref_code = normalized.ref_code
        if not ref_code:
            await run_in_threadpool(self.dedup.mark, event_id, event_type)
            logger.info("webhook_no_ref_code", event_id=event_id)
            return _ok("unattributed", ignored=True, reason="no_ref_code")

        # 6. Referrer
        referrer_id = await run_in_threadpool(self.ledger.user_for, ref_code)
        if not referrer_id:
            await run_in_threadpool(self.dedup.mark, event_id, event_type)
            logger.info("webhook_unknown_ref_code", event_id=event_id, ref_code=ref_code)
            return _ok("unattributed", ignored=True, reason="unknown_ref_code")

        # 7. Mark before crediting: a crash after this point loses at most one
        # credit instead of double-counting on the provider's retry.
        if event_id and not await run_in_threadpool(self.dedup.mark, event_id, event_type):
            logger.info("webhook_duplicate", event_id=event_id, raced=True)
            return _ok("deduped", deduped=True)

        # 8. Credit
        user = await run_in_threadpool(self.ledger.credit, referrer_id)
        logger.info(
            "referral_credited",
            event_id=event_id,
            event_type=event_type,
            user_id=referrer_id,
            referral_count=user.referral_count,
        )

        # 9. Reward (best effort)
        try:
            await self.rewards.maybe_reward(user)
        except Exception as e:
            logger.error("reward_dispatch_failed", user_id=referrer_id, error=str(e))

        return _ok("credited", type=event_type)
