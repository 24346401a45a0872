"""Request, polling and optimistic-update state for views."""

from services.data_access.app.state.batch import BatchResult, BatchRunner
from services.data_access.app.state.optimistic import OptimisticTracker
from services.data_access.app.state.polling import PollingCoordinator, PollingSession, PollingStatus
from services.data_access.app.state.request import (
    ApiRequest,
    GenerationCounter,
    PaginatedApiRequest,
    RequestState,
)

__all__ = [
    "BatchResult",
    "BatchRunner",
    "OptimisticTracker",
    "PollingCoordinator",
    "PollingSession",
    "PollingStatus",
    "ApiRequest",
    "GenerationCounter",
    "PaginatedApiRequest",
    "RequestState",
]
