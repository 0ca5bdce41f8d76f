"""Shared broadcast utility for sending a message to a set of channels."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable

    from encounter.session.protocol import ChannelGateway

logger = structlog.get_logger()


async def broadcast_to_channels(
    gateway: ChannelGateway,
    channel_ids: Iterable[str],
    content: str,
    exclude: Iterable[str] = (),
) -> list[str]:
    """Send content to every channel not excluded and return the ids reached.

    A channel that fails to receive the message is logged and skipped; the
    remaining channels still get it.
    """
    excluded = set(exclude)
    delivered: list[str] = []
    for channel_id in list(channel_ids):
        if channel_id in excluded:
            continue
        try:
            await gateway.send(channel_id, content)
        except Exception:
            logger.exception("broadcast to channel failed", channel_id=channel_id)
            continue
        delivered.append(channel_id)
    return delivered
