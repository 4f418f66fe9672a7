# Services: provider client, view refresh and read feeds

from empsync.services.employes_api import (
    EmployesClient,
    RETRYABLE_STATUS_CODES,
)
from empsync.services.view_refresh import (
    DerivedViewRefresher,
    RefreshResult,
    get_view_refresher,
)

__all__ = [
    # Provider
    "EmployesClient",
    "RETRYABLE_STATUS_CODES",
    # Read view
    "DerivedViewRefresher",
    "RefreshResult",
    "get_view_refresher",
]
