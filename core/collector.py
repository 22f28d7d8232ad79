"""
Cross-process metrics collection.

Every worker plays two roles. As the querying side it asks each live sibling
for a snapshot of its registry and waits for one reply per worker. As the
replying side it answers those requests with its own snapshot. Requests and
responses carry a ``round_id`` so that concurrent rounds never share replies.
"""
import asyncio
import logging
from typing import Dict, List, Optional
from uuid import uuid4

from config.consts import (
    METRICS_COLLECTION_ON_TIMEOUT,
    METRICS_COLLECTION_TIMEOUT,
    TOPIC_GET_METRICS,
    TOPIC_RETURN_METRICS,
    TimeoutPolicy,
)
from core.errors import CollectionTimeoutError, SupervisorUnavailableError
from core.process_manager import ProcessManager
from core.registry import MetricRegistry
from models.messages import CollectionRequest, CollectionResponse
from models.metric import MetricSnapshot


class PendingRound:
    def __init__(self, round_id: str, expected: int):
        self.round_id = round_id
        self.expected = expected
        self.snapshots: List[MetricSnapshot] = []
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def missing(self) -> int:
        return max(self.expected - len(self.snapshots), 0)

    def add(self, snapshot: MetricSnapshot):
        if self.future.done():
            return
        self.snapshots.append(snapshot)
        if len(self.snapshots) == self.expected:
            self.future.set_result(list(self.snapshots))


class ClusterCollector:
    def __init__(
        self,
        registry: MetricRegistry,
        process_manager: ProcessManager,
        timeout: Optional[float] = METRICS_COLLECTION_TIMEOUT,
        on_timeout: TimeoutPolicy = METRICS_COLLECTION_ON_TIMEOUT,
    ):
        self.logger = logging.getLogger(__name__)
        self._registry = registry
        self._process_manager = process_manager
        # None or 0 waits for every worker without a deadline
        self._timeout = timeout or None
        self._on_timeout = TimeoutPolicy(on_timeout)
        self._rounds: Dict[str, PendingRound] = {}
        self._installed = False

    @property
    def pending_rounds(self) -> int:
        return len(self._rounds)

    def install(self):
        """Register the request and response handlers with the process manager."""
        if self._installed:
            return
        self._process_manager.register_handler(TOPIC_GET_METRICS, self.handle_get_metrics)
        self._process_manager.register_handler(
            TOPIC_RETURN_METRICS, self.handle_return_metrics
        )
        self._installed = True

    async def collect_cluster_metrics(self) -> List[MetricSnapshot]:
        try:
            worker_ids = await self._process_manager.list_workers()
        except Exception as e:
            raise SupervisorUnavailableError(
                f"Failed to list workers of {self._process_manager.service_name}: {e}"
            ) from e

        if not worker_ids:
            self.logger.info("No workers to collect metrics from")
            return []

        round_id = uuid4().hex
        pending = PendingRound(round_id, len(worker_ids))
        # the round must exist before any request leaves, a reply can beat the loop
        self._rounds[round_id] = pending
        try:
            request = CollectionRequest(
                sender=self._process_manager.worker_id, round_id=round_id
            )
            for worker_id in worker_ids:
                try:
                    await self._process_manager.send(worker_id, request)
                except Exception:
                    self.logger.exception(
                        "Failed to send metrics request",
                        extra={"round_id": round_id, "target_id": worker_id},
                    )
            return await self._wait(pending)
        finally:
            self._rounds.pop(round_id, None)

    async def _wait(self, pending: PendingRound) -> List[MetricSnapshot]:
        try:
            snapshots = await asyncio.wait_for(pending.future, self._timeout)
        except asyncio.TimeoutError:
            if self._on_timeout == TimeoutPolicy.FAIL:
                raise CollectionTimeoutError(
                    pending.round_id, pending.expected, len(pending.snapshots)
                ) from None
            self.logger.warning(
                "Metrics collection timed out, returning partial results",
                extra={
                    "round_id": pending.round_id,
                    "expected": pending.expected,
                    "missing": pending.missing,
                },
            )
            return list(pending.snapshots)

        self.logger.debug(
            "Metrics collection round complete",
            extra={"round_id": pending.round_id, "workers": len(snapshots)},
        )
        return snapshots

    async def handle_get_metrics(self, message: CollectionRequest):
        if message.sender < 0:
            self.logger.warning(
                "Ignoring metrics request from invalid sender",
                extra={"sender": message.sender, "round_id": message.round_id},
            )
            return

        response = CollectionResponse(
            sender=self._process_manager.worker_id,
            round_id=message.round_id,
            data=self._registry.snapshot(),
        )
        await self._process_manager.send(message.sender, response)

    async def handle_return_metrics(self, message: CollectionResponse):
        pending = self._rounds.get(message.round_id)
        if pending is None:
            self.logger.debug(
                "Dropping metrics response for unknown round",
                extra={"sender": message.sender, "round_id": message.round_id},
            )
            return
        pending.add(message.data)
