"""Usage event resources.

App and service usage events share one wrapper, parameterized by the event
model. Event models accept unknown fields so that API additions never break
decoding.
"""

import logging
from datetime import datetime
from typing import Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .pagination import Link, ListResponse, PaginationIterator, decode_list
from .query import QueryParams
from .transport import Transport

logger = logging.getLogger(__name__)

APP_USAGE_EVENTS_PATH = "/v3/app_usage_events"
SERVICE_USAGE_EVENTS_PATH = "/v3/service_usage_events"
PURGE_AND_RESEED_ACTION = "actions/destructively_purge_all_and_reseed"


class Resource(BaseModel):
    """Fields common to every API resource."""

    model_config = ConfigDict(extra="allow")

    guid: str = Field(..., description="Unique resource identifier")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    links: Dict[str, Link] = Field(default_factory=dict)


class AppUsageEvent(Resource):
    """Application lifecycle usage event."""

    pass


class ServiceUsageEvent(Resource):
    """Service instance lifecycle usage event."""

    pass


E = TypeVar("E", bound=Resource)


class UsageEventsClient(Generic[E]):
    """Read and reseed usage events of one kind."""

    def __init__(
        self,
        transport: Transport,
        resource_path: str,
        event_type: Type[E],
        event_name: str,
    ):
        self.transport = transport
        self.resource_path = resource_path
        self.event_type = event_type
        self.event_name = event_name

    async def get(self, guid: str) -> E:
        if not guid:
            raise ValueError(f"{self.event_name} usage event guid is required")
        response = await self.transport.get(f"{self.resource_path}/{guid}")
        return response.decode(self.event_type)

    async def list(self, params: Optional[QueryParams] = None) -> ListResponse[E]:
        response = await self.transport.get(self.resource_path, params)
        return decode_list(response, self.event_type)

    def iterate(
        self, params: Optional[QueryParams] = None, max_pages: Optional[int] = None
    ) -> PaginationIterator[E]:
        return PaginationIterator(
            self.transport, self.resource_path, self.event_type, params, max_pages
        )

    async def purge_and_reseed(self) -> None:
        """Delete all events and reseed from current state. Admin only."""
        logger.info(f"Purging and reseeding {self.event_name} usage events")
        await self.transport.post(f"{self.resource_path}/{PURGE_AND_RESEED_ACTION}")


def app_usage_events(transport: Transport) -> UsageEventsClient[AppUsageEvent]:
    return UsageEventsClient(transport, APP_USAGE_EVENTS_PATH, AppUsageEvent, "app")


def service_usage_events(
    transport: Transport,
) -> UsageEventsClient[ServiceUsageEvent]:
    return UsageEventsClient(
        transport, SERVICE_USAGE_EVENTS_PATH, ServiceUsageEvent, "service"
    )
