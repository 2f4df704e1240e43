"""Client-side plumbing for raid rooms."""

from .api_client import RaidApiClient, RaidApiError
from .controller import RaidController
from .realtime import RoomSubscription

__all__ = ["RaidApiClient", "RaidApiError", "RaidController", "RoomSubscription"]
