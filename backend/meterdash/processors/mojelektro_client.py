"""
Moj Elektro API client.

Thin async wrapper over the metering data API: interval readings per usage
point, reading type and quality catalogues, and metering point metadata.
"""
import asyncio
from typing import Dict, Any, Optional, List, Sequence

import httpx
from meterdash.core.config import Settings, MOJ_ELEKTRO_URLS
from meterdash.core.logging import get_logger
from meterdash.models.schemas.mojelektro import APIErrorPayload, MeterReadingsResponse

logger = get_logger(__name__)


class MojElektroAPIError(Exception):
    """Non-2xx response from the Moj Elektro API."""

    def __init__(self, message: str, code: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def __str__(self) -> str:
        if self.code is not None:
            return f"API Error ({self.code}): {self.message}"
        return f"API Error: {self.message}"


class MojElektroClient:
    """Client for the Moj Elektro metering data API."""

    DEFAULT_TIMEOUT = 30.0  # seconds
    DEFAULT_RETRY_COUNT = 2
    DEFAULT_RETRY_DELAY = 1.0  # seconds

    def __init__(
        self,
        api_key: str,
        environment: str = "production",
        timeout: float = DEFAULT_TIMEOUT,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_key: Moj Elektro API token
            environment: 'production' or 'test'
            timeout: Request timeout (seconds)
            retry_count: Retries for 5xx and transport errors
            retry_delay: Base delay between retries (seconds)
            http_client: Preconfigured client, mainly for tests
        """
        if not api_key:
            raise ValueError("Moj Elektro API key is required.")

        self.environment = "test" if environment == "test" else "production"
        self.base_url = MOJ_ELEKTRO_URLS[self.environment]
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "X-API-TOKEN": api_key,
            "Accept": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "MojElektroClient":
        return cls(
            api_key=settings.MOJ_ELEKTRO_API_KEY or "",
            environment=settings.MOJ_ELEKTRO_ENV,
            timeout=settings.MOJ_ELEKTRO_TIMEOUT,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "MojElektroClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            error = APIErrorPayload.model_validate(response.json())
        except ValueError:
            # Not a JSON error body (includes pydantic.ValidationError)
            raise MojElektroAPIError(
                f"{response.status_code} {response.reason_phrase} for {response.request.url}",
                status_code=response.status_code,
            )
        raise MojElektroAPIError(error.opis, code=error.koda, status_code=response.status_code)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a path relative to the API root with retry on server errors.

        4xx responses are raised immediately; 5xx responses and transport
        errors are retried with linear backoff.
        """
        url = f"{self.base_url}{path}"
        last_exception: Optional[Exception] = None

        for attempt in range(self.retry_count + 1):
            try:
                response = await self._client.get(url, headers=self._headers, params=params)
                self._raise_for_status(response)
                return response.json()

            except MojElektroAPIError as e:
                if e.status_code is not None and e.status_code < 500:
                    logger.error(f"Client error fetching {path}: {e}")
                    raise
                last_exception = e
                logger.warning(f"Server error fetching {path} (attempt {attempt + 1}/{self.retry_count + 1}): {e}")

            except httpx.TransportError as e:
                last_exception = e
                logger.warning(f"Error fetching {path} (attempt {attempt + 1}/{self.retry_count + 1}): {e}")

            if attempt < self.retry_count:
                await asyncio.sleep(self.retry_delay * (attempt + 1))

        logger.error(f"Failed to fetch {path} after {self.retry_count + 1} attempts")
        raise last_exception

    async def get_meter_readings(
        self,
        usage_point: str,
        start_time: str,
        end_time: str,
        options: Optional[Sequence[str]] = None,
    ) -> MeterReadingsResponse:
        """
        Fetch 15-minute interval readings for a usage point.

        Args:
            usage_point: Metering point GSRN
            start_time: Window start date (YYYY-MM-DD, inclusive)
            end_time: Window end date (YYYY-MM-DD, exclusive)
            options: Filter options such as "ReadingType=<code>"; each one is
                sent as a separate `option` query parameter

        Returns:
            Parsed response with its interval blocks
        """
        params: Dict[str, Any] = {
            "usagePoint": usage_point,
            "startTime": start_time,
            "endTime": end_time,
        }
        if options:
            params["option"] = list(options)

        data = await self._get("/meter-readings", params=params)
        return MeterReadingsResponse.model_validate(data or {})

    async def get_metering_point(self, identifier: str) -> Dict[str, Any]:
        """Details of a measuring point (GET /merilno-mesto/{identifier})."""
        return await self._get(f"/merilno-mesto/{identifier}")

    async def get_metering_point_contract(self, gsrn: str) -> Dict[str, Any]:
        """Contractual data of a metering point (GET /merilna-tocka/{gsrn})."""
        return await self._get(f"/merilna-tocka/{gsrn}")

    async def get_reading_qualities(self) -> List[Dict[str, Any]]:
        return await self._get("/reading-qualities")

    async def get_reading_types(self) -> List[Dict[str, Any]]:
        return await self._get("/reading-type")
