"""Discord REST API client.

Only the handful of endpoints this service needs: role grants, channel
messages and slash-command registration.
"""

from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from reftrack.logging_config import get_logger

logger = get_logger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"


class DiscordAPIError(Exception):
    """Raised when Discord answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str, retry_after: float | None = None):
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after
        super().__init__(f"Discord API error {status_code}: {body[:200]}")


class DiscordClient:
    """Thin async wrapper around the Discord bot REST API.

    One instance is created at startup and shared by every request; call
    :meth:`close` on shutdown.
    """

    def __init__(
        self,
        token: str | None,
        base_url: str = DISCORD_API_BASE,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = (token or "").strip()
        self.enabled = bool(self.token)
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bot {self.token}",
                "User-Agent": "reftrack (https://github.com/reftrack/reftrack, 1.0)",
            },
        )

        if not self.enabled:
            logger.warning("discord_client_disabled", reason="DISCORD_TOKEN not set")

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self.client.request(method, path, **kwargs)
        if response.status_code >= 400:
            retry_after = None
            if response.status_code == 429:
                try:
                    retry_after = float(response.headers.get("Retry-After") or 1.0)
                except ValueError:
                    retry_after = 1.0
            raise DiscordAPIError(response.status_code, response.text, retry_after=retry_after)
        return response

    async def add_member_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        """Grant a role to a guild member."""
        await self._request(
            "PUT",
            f"/guilds/{guild_id}/members/{user_id}/roles/{role_id}",
            headers={"X-Audit-Log-Reason": "Referral reward"},
        )
        logger.info("discord_role_granted", guild_id=guild_id, user_id=user_id, role_id=role_id)

    async def send_message(
        self,
        channel_id: str,
        content: str,
        mention_user_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """Post a message in a text channel.

        Only the listed users are pinged, whatever the content says.
        """
        payload = {
            "content": content[:2000],
            "allowed_mentions": {"parse": [], "users": list(mention_user_ids or [])},
        }
        response = await self._request("POST", f"/channels/{channel_id}/messages", json=payload)
        logger.info("discord_message_sent", channel_id=channel_id)
        return response.json()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def register_commands(
        self,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Overwrite the application's slash commands (global or per guild)."""
        if guild_id:
            path = f"/applications/{application_id}/guilds/{guild_id}/commands"
        else:
            path = f"/applications/{application_id}/commands"
        response = await self._request("PUT", path, json=commands)
        logger.info(
            "discord_commands_registered",
            scope="guild" if guild_id else "global",
            count=len(commands),
        )
        return response.json()
