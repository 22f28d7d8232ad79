import asyncio
import logging
import os
from typing import List, Optional

import redis
import redis.asyncio as aioredis

from config.consts import (
    REDIS_URL,
    SERVICE_NAME,
    WORKER_HEARTBEAT_INTERVAL,
    WORKER_ID,
    WORKER_TTL,
)
from core.process_manager import ProcessManager
from models.messages import CollectionMessage, dump_message


class RedisProcessManager(ProcessManager):
    """
    Process group membership and messaging on top of Redis.

    Every worker keeps a heartbeat key ``{service}:workers:{id}`` alive and
    listens on its own pub/sub channel ``{service}:inbox:{id}``. Workers that
    stop refreshing their key drop out of the group once it expires.
    """

    def __init__(
        self,
        service_name: str = SERVICE_NAME,
        redis_url: str = REDIS_URL,
        worker_id: Optional[int] = WORKER_ID,
        heartbeat_interval: int = WORKER_HEARTBEAT_INTERVAL,
        worker_ttl: int = WORKER_TTL,
        retry_delay: float = 3,
        redis_client: Optional[aioredis.Redis] = None,
    ):
        super().__init__(service_name)
        self.logger = logging.getLogger(__name__)
        self._redis_url = redis_url
        self._redis = redis_client
        self._worker_id = worker_id
        self._heartbeat_interval = heartbeat_interval
        self._worker_ttl = worker_ttl
        self._retry_delay = retry_delay
        self._pubsub = None
        self._listener_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def worker_id(self) -> int:
        if self._worker_id is None:
            raise RuntimeError("RedisProcessManager not started. Call start() first.")
        return self._worker_id

    def _worker_key(self, worker_id) -> str:
        return f"{self.service_name}:workers:{worker_id}"

    def _inbox_channel(self, worker_id) -> str:
        return f"{self.service_name}:inbox:{worker_id}"

    def _sequence_key(self) -> str:
        return f"{self.service_name}:worker-seq"

    async def start(self):
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url, decode_responses=True)

        if self._worker_id is None:
            # ids start at 0 like the ones a supervisor hands out
            self._worker_id = int(await self._redis.incr(self._sequence_key())) - 1

        # the inbox must exist before siblings can list this worker
        self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self._inbox_channel(self._worker_id))

        await self._heartbeat()

        loop = asyncio.get_running_loop()
        self._listener_task = loop.create_task(self._listen())
        self._heartbeat_task = loop.create_task(self._heartbeat_loop())
        self.logger.info(
            "Joined process group",
            extra={"service_name": self.service_name, "worker_id": self._worker_id},
        )

    async def stop(self):
        for task in (self._listener_task, self._heartbeat_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._listener_task = None
        self._heartbeat_task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe()
            finally:
                await self._pubsub.aclose()
                self._pubsub = None

        if self._redis is not None:
            try:
                await self._redis.delete(self._worker_key(self._worker_id))
            except redis.exceptions.RedisError:
                self.logger.exception("Failed to leave process group")
            await self._redis.aclose()
            self._redis = None
        self.logger.info("Left process group", extra={"worker_id": self._worker_id})

    async def list_workers(self) -> List[int]:
        worker_ids = []
        async for key in self._redis.scan_iter(match=self._worker_key("*")):
            if isinstance(key, bytes):
                key = key.decode()
            suffix = key.rsplit(":", 1)[-1]
            if suffix.isdigit():
                worker_ids.append(int(suffix))
        return sorted(worker_ids)

    async def send(self, target_id: int, message: CollectionMessage):
        receivers = await self._redis.publish(
            self._inbox_channel(target_id), dump_message(message)
        )
        if not receivers:
            self.logger.debug(
                "Message published with no subscriber",
                extra={"target_id": target_id, "topic": message.topic},
            )

    async def _heartbeat(self):
        await self._redis.set(
            self._worker_key(self._worker_id), os.getpid(), ex=self._worker_ttl
        )

    async def _heartbeat_loop(self):
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self._heartbeat()
            except redis.exceptions.RedisError:
                self.logger.exception("Failed to refresh worker heartbeat")

    async def _listen(self):
        while True:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await self.dispatch(message["data"])
                # listen() ends once the inbox is unsubscribed
                return
            except redis.exceptions.RedisError:
                self.logger.exception(
                    f"Failed to read worker inbox... Retry in {self._retry_delay} seconds"
                )
                await asyncio.sleep(self._retry_delay)
            except Exception:
                self.logger.exception("Worker inbox error")
                await asyncio.sleep(self._retry_delay)
