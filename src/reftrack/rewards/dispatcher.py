"""One-time reward for users who reach the referral threshold."""

import httpx
from starlette.concurrency import run_in_threadpool

from reftrack.discord.client import DiscordAPIError, DiscordClient
from reftrack.logging_config import get_logger
from reftrack.referral.service import ReferralLedger
from reftrack.storage.models import ReferralUser

logger = get_logger(__name__)

DEFAULT_REWARD_THRESHOLD = 3


def announcement_text(user_id: str, threshold: int) -> str:
    return (
        f"🎉 <@{user_id}> just hit **{threshold} referrals** — "
        f"granting **1 month free membership**! ✅"
    )


class RewardDispatcher:
    """Marks a user rewarded once, then grants the role and announces it.

    The bookkeeping is authoritative: the Discord side effects are attempted
    once and their failure never reverts ``rewarded``.
    """

    def __init__(
        self,
        ledger: ReferralLedger,
        discord: DiscordClient,
        guild_id: str | None = None,
        role_id: str | None = None,
        channel_id: str | None = None,
        threshold: int = DEFAULT_REWARD_THRESHOLD,
    ):
        self.ledger = ledger
        self.discord = discord
        self.guild_id = guild_id
        self.role_id = role_id
        self.channel_id = channel_id
        self.threshold = threshold

    def is_eligible(self, user: ReferralUser) -> bool:
        return (user.referral_count or 0) >= self.threshold and not user.rewarded

    async def maybe_reward(self, user: ReferralUser) -> bool:
        """Reward ``user`` if they just crossed the threshold.

        Returns:
            True if this call rewarded the user
        """
        if not self.is_eligible(user):
            return False

        if not await run_in_threadpool(self.ledger.reward, user.user_id):
            # Someone else got there first.
            return False

        logger.info("reward_granted", user_id=user.user_id, referral_count=user.referral_count)
        await self.dispatch(user.user_id)
        return True

    async def dispatch(self, user_id: str) -> None:
        """Best-effort role grant and announcement."""
        if not self.guild_id or not self.role_id or not self.channel_id:
            logger.warning(
                "reward_effects_skipped",
                user_id=user_id,
                reason="GUILD_ID/REWARD_ROLE_ID/ANNOUNCE_CHANNEL_ID not set",
            )
            return
        if not self.discord.enabled:
            logger.warning("reward_effects_skipped", user_id=user_id, reason="discord_disabled")
            return

        try:
            await self.discord.add_member_role(self.guild_id, user_id, self.role_id)
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.error("reward_role_grant_failed", user_id=user_id, error=str(e))

        try:
            await self.discord.send_message(
                self.channel_id,
                announcement_text(user_id, self.threshold),
                mention_user_ids=[user_id],
            )
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.error("reward_announcement_failed", user_id=user_id, error=str(e))
