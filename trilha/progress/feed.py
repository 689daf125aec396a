"""Redis Pub/Sub push feed of enrollment snapshots.

Every successful enrollment upsert publishes the stored snapshot on the
(course, learner) channel; subscribers get each snapshot in a background
listener task until they unsubscribe.
"""

import asyncio
import contextlib
import inspect
import json
from uuid import UUID

import redis.asyncio as redis

from trilha.core.logging import get_logger
from trilha.core.redis import enrollment_channel

from .protocols import SnapshotCallback
from .schemas import EnrollmentSnapshot


logger = get_logger(__name__)


class RedisFeedSubscription:
    """Running listener of one enrollment channel."""

    def __init__(self, task: asyncio.Task, channel: str):
        self.task = task
        self.channel = channel

    @property
    def active(self) -> bool:
        return not self.task.done()

    async def unsubscribe(self) -> None:
        """Stop the listener; the channel is released by the listener itself."""
        if not self.task.done():
            self.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self.task


class RedisEnrollmentFeed:
    """Enrollment feed over Redis Pub/Sub."""

    def __init__(
        self,
        redis_client: redis.Redis,
        poll_timeout: float = 1.0,
        poll_interval: float = 0.1,
    ):
        self.redis = redis_client
        self.poll_timeout = poll_timeout
        self.poll_interval = poll_interval

    async def publish(self, snapshot: EnrollmentSnapshot) -> None:
        """Publish a stored snapshot to its (course, learner) channel."""
        channel = enrollment_channel(snapshot.course_id, snapshot.user_id)
        message = {
            "type": "enrollment",
            "data": snapshot.model_dump(mode="json"),
        }

        # A lost push is repaired by the next load
        try:
            await self.redis.publish(channel, json.dumps(message))
        except Exception as e:
            logger.warning(
                "enrollment_feed_publish_failed", channel=channel, error=str(e)
            )

    async def subscribe(
        self, course_id: UUID, user_id: UUID, callback: SnapshotCallback
    ) -> RedisFeedSubscription:
        """Subscribe to a (course, learner) channel."""
        pubsub = self.redis.pubsub()
        channel = enrollment_channel(course_id, user_id)
        await pubsub.subscribe(channel)
        logger.info("subscribed_to_channel", channel=channel)

        task = asyncio.create_task(self._listen(pubsub, channel, callback))
        return RedisFeedSubscription(task, channel)

    async def _listen(self, pubsub, channel: str, callback: SnapshotCallback) -> None:
        try:
            while True:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self.poll_timeout
                )
                if message and message["type"] == "message":
                    snapshot = self._decode(message["data"], channel)
                    if snapshot is not None:
                        await self._deliver(callback, snapshot, channel)

                # Small delay to prevent busy loop
                await asyncio.sleep(self.poll_interval)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("enrollment_feed_error", channel=channel, error=str(e))
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            logger.info("unsubscribed_from_channel", channel=channel)

    @staticmethod
    def _decode(data: str, channel: str) -> EnrollmentSnapshot | None:
        try:
            payload = json.loads(data)
            return EnrollmentSnapshot.model_validate(payload.get("data", payload))
        except (ValueError, AttributeError) as e:
            logger.warning("enrollment_feed_bad_message", channel=channel, error=str(e))
            return None

    @staticmethod
    async def _deliver(
        callback: SnapshotCallback, snapshot: EnrollmentSnapshot, channel: str
    ) -> None:
        try:
            result = callback(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("enrollment_feed_callback_failed", channel=channel, error=str(e))
