"""FunnelCache: Error Taxonomy.

"No data collected for a historical period" is deliberately absent here:
it is a normal result (see ``NotFoundHistorical`` in summary_models), not
an exception.
"""


class FunnelCacheError(Exception):
    """Base class for all FunnelCache errors."""


class UpstreamFetchError(FunnelCacheError):
    """The ad platform call failed or returned unusable data."""

    def __init__(self, message: str, platform: str = "", status_code: int = 0):
        self.platform = platform
        self.status_code = status_code
        super().__init__(message)


class SummaryWriteError(FunnelCacheError):
    """A period summary could not be durably written after retrying."""


class ClientNotFoundError(FunnelCacheError):
    """No client is registered under the requested id."""

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")
