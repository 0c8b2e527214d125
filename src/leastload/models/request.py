"""Request model - opaque unit of work routed to a worker."""

from pydantic import BaseModel, ConfigDict


class Request(BaseModel):
    """A request passed through to a worker unmodified."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    request_type: str = "GET"
