import asyncio
from typing import Dict, List, Set, Tuple

import pytest

from core.collector import ClusterCollector
from core.process_manager import ProcessManager
from core.registry import MetricRegistry
from models.messages import dump_message
from models.metric import MetricDefinition


class InMemoryProcessGroup:
    """A process group living in one event loop, messages go through JSON."""

    def __init__(self, service_name="test-service"):
        self.service_name = service_name
        self.members: Dict[int, "InMemoryProcessManager"] = {}
        self.muted: Set[int] = set()
        self.fail_listing = False
        self.sent: List[Tuple[int, int, str]] = []


class InMemoryProcessManager(ProcessManager):
    def __init__(self, group: InMemoryProcessGroup, worker_id: int):
        super().__init__(group.service_name)
        self._group = group
        self._worker_id = worker_id
        self._tasks = set()

    @property
    def worker_id(self) -> int:
        return self._worker_id

    async def start(self):
        self._group.members[self._worker_id] = self

    async def stop(self):
        self._group.members.pop(self._worker_id, None)

    async def list_workers(self):
        if self._group.fail_listing:
            raise ConnectionError("supervisor unreachable")
        return sorted(self._group.members)

    async def send(self, target_id, message):
        self._group.sent.append((self._worker_id, target_id, message.topic))
        target = self._group.members.get(target_id)
        if target is None or target_id in self._group.muted:
            return
        task = asyncio.get_running_loop().create_task(target.dispatch(dump_message(message)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def make_registry(jobs=0, queue="default"):
    registry = MetricRegistry(collect_default_metrics=False)
    registry.register_metric(
        MetricDefinition(
            kind="counter",
            name="jobs_processed",
            help="Jobs processed by the worker",
            label_names=["queue"],
        )
    )
    if jobs:
        registry.get_instance("jobs_processed").labels(queue=queue).inc(jobs)
    return registry


def join_worker(group, worker_id, registry, timeout=None, on_timeout="partial"):
    manager = InMemoryProcessManager(group, worker_id)
    collector = ClusterCollector(registry, manager, timeout=timeout, on_timeout=on_timeout)
    collector.install()
    group.members[worker_id] = manager
    return manager, collector


@pytest.fixture
def group():
    return InMemoryProcessGroup()
