"""Work bus over Redis pub/sub.

Each stage listens on its own channel, <stage>-queue. Delivery is
at-most-once: no acknowledgement and no redelivery, so a message published
while no worker is subscribed, or held by a worker that dies, is gone.
Publishing happens inside record store transactions; this module only
covers the subscribing side.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from gifpipe.errors import BusError
from gifpipe.orchestrator.state import queue_name

logger = logging.getLogger(__name__)


@dataclass
class BusEvent:
    """One item received from a subscription.

    kind is "message" for work payloads and "subscribe"/"unsubscribe" for
    subscription confirmations, in which case count is the number of
    channels the connection is subscribed to.
    """

    kind: str
    channel: str
    data: Optional[str] = None
    count: int = 0


class Subscription:
    """An open subscription to one stage channel."""

    def __init__(self, pubsub, channel: str):
        self._pubsub = pubsub
        self.channel = channel

    async def events(self) -> AsyncIterator[BusEvent]:
        """Yield events until the transport fails.

        Raises:
            BusError: On any transport error.
        """
        try:
            async for raw in self._pubsub.listen():
                kind = raw.get("type")
                channel = raw.get("channel") or self.channel
                if kind == "message":
                    yield BusEvent("message", channel, data=raw.get("data"))
                elif kind in ("subscribe", "unsubscribe"):
                    yield BusEvent(kind, channel, count=int(raw.get("data") or 0))
                else:
                    logger.debug(f"{channel}: ignoring {kind} event")
        except (RedisError, OSError) as e:
            raise BusError(f"lost connection on {self.channel}: {e}") from e

    async def close(self) -> None:
        try:
            await self._pubsub.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing subscription to {self.channel}: {e}")


class WorkBus:
    """Subscribes stage workers to their channels."""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def subscribe(self, stage: str) -> Subscription:
        """Subscribe to a stage's channel.

        Raises:
            BusError: If the bus is unreachable or rejects the subscription.
        """
        channel = queue_name(stage)
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(channel)
        except (RedisError, OSError) as e:
            raise BusError(f"Can't subscribe to the {channel}: {e}") from e
        return Subscription(pubsub, channel)
