from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from config.consts import TOPIC_GET_METRICS, TOPIC_RETURN_METRICS


class CollectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: Literal["get_metrics"] = TOPIC_GET_METRICS
    sender: int = Field(alias="from")
    round_id: str


class CollectionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, ser_json_inf_nan="constants")

    topic: Literal["return_metrics"] = TOPIC_RETURN_METRICS
    sender: int = Field(alias="from")
    round_id: str
    data: List[Dict[str, Any]] = []


CollectionMessage = Annotated[
    Union[CollectionRequest, CollectionResponse], Field(discriminator="topic")
]

_message_adapter = TypeAdapter(CollectionMessage)


def dump_message(message: CollectionMessage) -> str:
    return message.model_dump_json(by_alias=True)


def load_message(raw: Union[str, bytes, Dict[str, Any]]) -> CollectionMessage:
    """Parse a wire message into its typed variant, keyed by ``topic``."""
    if isinstance(raw, dict):
        return _message_adapter.validate_python(raw)
    return _message_adapter.validate_json(raw)
