"""Service container and FastAPI dependencies."""

from dataclasses import dataclass

from fastapi import Request

from reftrack.discord.client import DiscordClient
from reftrack.discord.commands import CommandHandler
from reftrack.referral.service import ReferralLedger
from reftrack.rewards.dispatcher import RewardDispatcher
from reftrack.settings import Settings
from reftrack.storage.db import Database
from reftrack.storage.repo import ReferralStore
from reftrack.webhooks.dedup import DedupLedger
from reftrack.webhooks.pipeline import AttributionPipeline
from reftrack.webhooks.signature import SignatureVerifier


@dataclass
class Services:
    """Long-lived collaborators, built once per application."""

    settings: Settings
    db: Database
    store: ReferralStore
    ledger: ReferralLedger
    discord: DiscordClient
    rewards: RewardDispatcher
    pipeline: AttributionPipeline
    commands: CommandHandler


def build_services(
    settings: Settings,
    db: Database | None = None,
    discord: DiscordClient | None = None,
) -> Services:
    """Wire the referral components together.

    Args:
        settings: Application settings
        db: Database to use (defaults to ``settings.database_url``)
        discord: Discord client (defaults to one using ``settings.discord_token``)
    """
    db = db or Database(settings.database_url)
    discord = discord or DiscordClient(settings.discord_token)

    store = ReferralStore(db)
    ledger = ReferralLedger(store)
    rewards = RewardDispatcher(
        ledger,
        discord,
        guild_id=settings.guild_id,
        role_id=settings.reward_role_id,
        channel_id=settings.announce_channel_id,
        threshold=settings.reward_threshold,
    )
    pipeline = AttributionPipeline(
        verifier=SignatureVerifier(settings.whop_webhook_secret),
        dedup=DedupLedger(store, source="whop"),
        ledger=ledger,
        rewards=rewards,
        debug=settings.debug_webhooks,
    )
    commands = CommandHandler(
        ledger,
        checkout_url=settings.whop_checkout_url,
        threshold=settings.reward_threshold,
    )
    return Services(
        settings=settings,
        db=db,
        store=store,
        ledger=ledger,
        discord=discord,
        rewards=rewards,
        pipeline=pipeline,
        commands=commands,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
