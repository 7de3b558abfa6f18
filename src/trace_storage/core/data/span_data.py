from enum import Enum
from typing import Optional, Dict, List

from pydantic import BaseModel, Field, field_validator


class SpanKind(str, Enum):
    CLIENT = "CLIENT"
    SERVER = "SERVER"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


class Endpoint(BaseModel):
    service_name: Optional[str] = Field(None, alias="serviceName")
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    port: Optional[int] = None

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }


class Annotation(BaseModel):
    """An event recorded on a span. timestamp is epoch microseconds."""
    timestamp: int
    value: str

    model_config = {
        "frozen": True,
    }


class Span(BaseModel):
    """
    A single timed operation in a trace, in the Zipkin v2 shape.

    timestamp and duration are microseconds; a timestamp of zero means the
    span was reported without an authoritative start time.
    """
    trace_id: str = Field(alias="traceId")
    parent_id: Optional[str] = Field(None, alias="parentId")
    id: str
    kind: Optional[SpanKind] = None
    name: Optional[str] = None
    timestamp: int = 0
    duration: int = 0
    local_endpoint: Optional[Endpoint] = Field(None, alias="localEndpoint")
    remote_endpoint: Optional[Endpoint] = Field(None, alias="remoteEndpoint")
    annotations: List[Annotation] = []
    tags: Dict[str, str] = {}
    debug: bool = False
    shared: bool = False

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    @field_validator('timestamp', 'duration', mode='before')
    @classmethod
    def none_as_zero(cls, v):
        return 0 if v is None else v

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_defaults=True)

    @classmethod
    def from_json(cls, json_str: str) -> "Span":
        return cls.model_validate_json(json_str)

    def __str__(self) -> str:
        return self.to_json()
