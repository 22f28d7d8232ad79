import abc
import logging
from typing import Any, Awaitable, Callable, Dict, List, Union

from pydantic import ValidationError

from models.messages import CollectionMessage, load_message

MessageHandler = Callable[[CollectionMessage], Awaitable[None]]


class ProcessManager(abc.ABC):
    """
    Collaborator giving access to the sibling workers of a process group.

    Inbound messages arrive on one channel per worker and are routed through a
    dispatch table keyed by topic. Handlers are registered once at startup.
    """

    def __init__(self, service_name: str):
        self.logger = logging.getLogger(__name__)
        self.service_name = service_name
        self._handlers: Dict[str, MessageHandler] = {}

    @property
    @abc.abstractmethod
    def worker_id(self) -> int:
        pass

    @abc.abstractmethod
    async def start(self):
        pass

    @abc.abstractmethod
    async def stop(self):
        pass

    @abc.abstractmethod
    async def list_workers(self) -> List[int]:
        pass

    @abc.abstractmethod
    async def send(self, target_id: int, message: CollectionMessage):
        pass

    def register_handler(self, topic: str, handler: MessageHandler):
        if topic in self._handlers:
            raise ValueError(f"A handler is already registered for topic {topic}")
        self._handlers[topic] = handler

    async def dispatch(self, raw: Union[str, bytes, Dict[str, Any]]):
        try:
            message = load_message(raw)
        except ValidationError:
            self.logger.warning(
                "Dropping malformed inbound message",
                extra={"worker_id": self.worker_id},
            )
            return

        handler = self._handlers.get(message.topic)
        if handler is None:
            self.logger.debug(
                "No handler for inbound message",
                extra={"topic": message.topic, "worker_id": self.worker_id},
            )
            return

        try:
            await handler(message)
        except Exception:
            # one bad message must not stop the inbox listener
            self.logger.exception(
                "Failed to handle inbound message",
                extra={"topic": message.topic, "sender": message.sender},
            )
