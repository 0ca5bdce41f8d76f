"""
Deployment of structured command definitions.

Global commands are published once for the application, guild and admin
commands on every guild the bot is in. A bulk overwrite replaces the whole
set, so commands the bot no longer handles disappear and changed ones are
updated. In development mode global commands are deployed as guild
commands, which the platform propagates immediately.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import discord
import structlog

from bot.messaging.types import CommandAccess

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bot.messaging.handlers import InteractionHandler

logger = structlog.get_logger()


def split_command_payloads(
    handlers: Iterable[InteractionHandler], *, development: bool
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Return (global payloads, guild payloads)."""
    global_payloads: list[dict[str, Any]] = []
    guild_payloads: list[dict[str, Any]] = []
    for handler in handlers:
        payload = handler.spec.to_payload()
        if handler.spec.access is CommandAccess.GLOBAL and not development:
            global_payloads.append(payload)
        else:
            guild_payloads.append(payload)
    return global_payloads, guild_payloads


async def deploy_commands(
    client: discord.Client,
    handlers: Iterable[InteractionHandler],
    guild_ids: Iterable[int],
    *,
    development: bool,
) -> None:
    """Overwrite the deployed commands. Failures are logged, the bot keeps running."""
    application_id = client.application_id
    if application_id is None:
        logger.error("cannot deploy commands before login")
        return
    global_payloads, guild_payloads = split_command_payloads(handlers, development=development)

    try:
        await client.http.bulk_upsert_global_commands(application_id, global_payloads)
        logger.info("deployed global commands", count=len(global_payloads))
    except discord.HTTPException:
        logger.exception("failed to deploy global commands")

    for guild_id in guild_ids:
        try:
            await client.http.bulk_upsert_guild_commands(application_id, guild_id, guild_payloads)
            logger.info("deployed guild commands", guild_id=str(guild_id), count=len(guild_payloads))
        except discord.HTTPException:
            logger.exception("failed to deploy guild commands", guild_id=str(guild_id))
