"""FunnelCache: Google Ads API Client.

Talks to the Google Ads REST interface (``googleAds:searchStream``) over
httpx, exchanging the client's OAuth refresh token for an access token.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from funnelcache.config import settings
from funnelcache.core.errors import UpstreamFetchError
from funnelcache.core.logging import get_logger

logger = get_logger("google.client")

GOOGLE_ADS_BASE = f"{settings.google_ads_base_url}/{settings.google_ads_api_version}"
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds


class GoogleAdsAPIError(UpstreamFetchError):
    """Raised when the Google Ads API or the OAuth endpoint returns an error."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message, platform="google", status_code=status_code)


def normalize_customer_id(customer_id: str) -> str:
    """``123-456-7890`` → ``1234567890``."""
    return (customer_id or "").replace("-", "").strip()


class GoogleAdsClient:
    """Async HTTP client for the Google Ads REST API."""

    def __init__(
        self,
        customer_id: str,
        refresh_token: str,
        developer_token: str | None = None,
        login_customer_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.customer_id = normalize_customer_id(customer_id)
        self.refresh_token = refresh_token
        self.developer_token = developer_token or settings.google_ads_developer_token
        self.login_customer_id = normalize_customer_id(
            login_customer_id or settings.google_ads_login_customer_id or ""
        )
        self.retry_base_delay = retry_base_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._access_token: Optional[str] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=60.0, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Auth ──

    async def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token
        client = await self._get_client()
        try:
            resp = await client.post(
                settings.google_oauth_token_url,
                data={
                    "client_id": settings.google_ads_client_id,
                    "client_secret": settings.google_ads_client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            resp.raise_for_status()
            token = resp.json().get("access_token")
        except httpx.HTTPStatusError as e:
            raise GoogleAdsAPIError(
                f"OAuth token refresh failed: {e.response.text}", e.response.status_code
            ) from e
        except (httpx.RequestError, ValueError) as e:
            raise GoogleAdsAPIError(f"OAuth token refresh failed: {e}") from e
        if not token:
            raise GoogleAdsAPIError("OAuth response did not contain an access token")
        self._access_token = token
        return token

    async def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {await self._get_access_token()}",
            "developer-token": self.developer_token,
        }
        if self.login_customer_id:
            headers["login-customer-id"] = self.login_customer_id
        return headers

    # ── Query ──

    async def search_stream(self, query: str) -> List[Dict[str, Any]]:
        """Run a GAQL query and flatten all streamed batches into result rows."""
        url = f"{GOOGLE_ADS_BASE}/customers/{self.customer_id}/googleAds:searchStream"
        client = await self._get_client()
        headers = await self._headers()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.post(url, json={"query": query}, headers=headers)
                if resp.status_code == 429 or resp.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        wait = self.retry_base_delay * (2 ** (attempt - 1))
                        logger.warning(
                            f"Google Ads returned {resp.status_code}. Retrying in {wait}s"
                        )
                        await asyncio.sleep(wait)
                        continue
                resp.raise_for_status()
                batches = resp.json()
            except httpx.HTTPStatusError as e:
                raise GoogleAdsAPIError(
                    f"Google Ads query failed: {e.response.text}", e.response.status_code
                ) from e
            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise GoogleAdsAPIError(
                    f"Connection failed after {MAX_RETRIES} retries: {e}"
                ) from e
            except ValueError as e:
                raise GoogleAdsAPIError(f"Malformed response from Google Ads: {e}") from e

            if isinstance(batches, dict):
                batches = [batches]
            if not isinstance(batches, list):
                raise GoogleAdsAPIError("Unexpected searchStream payload")
            rows: List[Dict[str, Any]] = []
            for batch in batches:
                rows.extend(batch.get("results", []) if isinstance(batch, dict) else [])
            logger.info(f"Fetched {len(rows)} Google Ads rows for {self.customer_id}")
            return rows

        raise GoogleAdsAPIError("Max retries exhausted", status_code=429)
