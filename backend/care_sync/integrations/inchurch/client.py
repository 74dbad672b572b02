"""
InChurch API Client.
Handles authentication, rate limiting, retries and caching of requests to
the InChurch member-management API.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from care_sync.core.config import Settings
from care_sync.integrations.inchurch.cache import CacheStats, ResponseCache
from care_sync.integrations.inchurch.errors import (
    InChurchError,
    InvalidResponseError,
    create_inchurch_error,
    network_error,
)
from care_sync.integrations.inchurch.rate_limiter import RateLimitInfo, SlidingWindowRateLimiter
from care_sync.integrations.inchurch.schema import (
    ApiEnvelope,
    MemberFilters,
    Pagination,
    RemoteGroup,
    RemoteMember,
)

logger = logging.getLogger(__name__)

USER_AGENT = "care-sync/1.0"


@dataclass
class InvalidMember:
    """A listed member whose payload failed validation."""
    external_id: Optional[str]
    error: InvalidResponseError


@dataclass
class MemberPage:
    """One page of the member listing."""
    members: List[RemoteMember]
    pagination: Pagination
    invalid: List[InvalidMember] = field(default_factory=list)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, InChurchError) and error.is_retryable


def _parse_int_header(headers: httpx.Headers, name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


class InChurchClient:
    """
    InChurch REST API Client for one tenant.

    Each instance owns its rate limit state and response cache, so one
    instance must be created per tenant credential set.

    - Sliding window rate limiting (default 200 requests / 60s)
    - Exponential backoff on network errors, 5xx and 429 (1s, 2s, 4s... capped at 10s)
    - Read-through cache for GET requests
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = "https://api.inchurch.com.br/v1",
        timeout: float = 10.0,
        max_retries: int = 3,
        rate_limit_requests: int = 200,
        rate_limit_window: float = 60.0,
        cache_ttl: float = 300.0,
        cache_max_keys: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        cache: Optional[ResponseCache] = None,
    ):
        """
        Initialize InChurch client.

        Args:
            api_key: Tenant API key
            api_secret: Tenant API secret
            base_url: InChurch API base URL
            timeout: HTTP request timeout in seconds
            max_retries: Extra attempts after the first for retryable failures
            rate_limit_requests: Max requests per window
            rate_limit_window: Window length in seconds
            cache_ttl: GET cache TTL in seconds
            cache_max_keys: GET cache key bound
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Awaitable sleep used for backoff waits
        """
        if not api_key or not api_secret:
            raise ValueError("InChurch client requires both api_key and api_secret")

        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._sleep = sleep

        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_requests=rate_limit_requests,
            window_seconds=rate_limit_window,
            sleep=sleep,
        )
        self.cache = cache or ResponseCache(ttl_seconds=cache_ttl, max_keys=cache_max_keys)

        # HTTP client
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
                "X-API-Key": api_key,
                "X-API-Secret": api_secret,
            },
        )

        logger.debug(f"InChurchClient initialized (url: {self.base_url})")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        api_key: str,
        api_secret: str,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ) -> "InChurchClient":
        """Builds a client for one tenant using the global API settings."""
        return cls(
            api_key=api_key,
            api_secret=api_secret,
            base_url=base_url or settings.inchurch_api_url,
            timeout=settings.inchurch_request_timeout,
            max_retries=settings.inchurch_max_retries,
            rate_limit_requests=settings.inchurch_rate_limit_requests,
            rate_limit_window=settings.inchurch_rate_limit_window,
            cache_ttl=settings.inchurch_cache_ttl,
            cache_max_keys=settings.inchurch_cache_max_keys,
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Core request pipeline
    # -------------------------------------------------------------------------

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[List[Tuple[str, Any]]] = None,
        json: Optional[Dict[str, Any]] = None,
        use_cache: bool = True,
    ) -> ApiEnvelope:
        """
        Makes a rate limited, retried request to the InChurch API.

        Args:
            method: HTTP method (GET, PUT...)
            endpoint: API endpoint (e.g., "/members")
            params: Query parameters as (key, value) pairs
            json: JSON body for PUT/POST
            use_cache: Whether a GET may be served from / stored in the cache

        Returns:
            Parsed response envelope

        Raises:
            InChurchError: On any API, network or payload failure
        """
        method = method.upper()
        cacheable = method == "GET" and use_cache
        cache_key = None

        if cacheable:
            query = str(httpx.QueryParams(params or []))
            cache_key = ResponseCache.make_key(method, f"{endpoint}?{query}", json)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit: {method} {endpoint}")
                return cached

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

        envelope = None
        async for attempt in retrying:
            with attempt:
                envelope = await self._send(method, endpoint, params, json)

        if cacheable and envelope.data is not None:
            self.cache.set(cache_key, envelope)

        return envelope

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[List[Tuple[str, Any]]],
        json: Optional[Dict[str, Any]],
    ) -> ApiEnvelope:
        """Performs one HTTP attempt and maps failures to typed errors."""
        await self.rate_limiter.acquire()

        try:
            response = await self._client.request(
                method=method,
                url=endpoint,
                params=params,
                json=json,
            )
        except httpx.RequestError as e:
            logger.warning(f"InChurch network error on {method} {endpoint}: {e}")
            raise network_error(e) from e

        self._observe_rate_limit(response)

        if response.status_code >= 400:
            body = self._safe_body(response)
            logger.error(f"InChurch API error: {response.status_code} on {method} {endpoint}")
            raise create_inchurch_error(response.status_code, body)

        return self._parse_envelope(response)

    def _observe_rate_limit(self, response: httpx.Response) -> None:
        remaining = _parse_int_header(response.headers, "x-ratelimit-remaining")
        if remaining is None:
            return
        self.rate_limiter.observe_headers(
            remaining=remaining,
            reset_epoch=_parse_int_header(response.headers, "x-ratelimit-reset"),
            limit=_parse_int_header(response.headers, "x-ratelimit-limit"),
        )

    @staticmethod
    def _safe_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _parse_envelope(response: httpx.Response) -> ApiEnvelope:
        try:
            envelope = ApiEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InvalidResponseError(
                "Malformed InChurch response envelope",
                status=response.status_code,
                details=str(e),
            ) from e

        if not envelope.success:
            error = envelope.error
            if error is None:
                raise InvalidResponseError(
                    "Unsuccessful InChurch response without error block",
                    status=response.status_code,
                )
            raise InChurchError(error.message, error.code, response.status_code, error.details)

        return envelope

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    async def fetch_member_page(
        self,
        page: int = 1,
        limit: int = 100,
        filters: Optional[MemberFilters] = None,
    ) -> MemberPage:
        """
        Fetches one page of members.

        Members that fail validation are set aside in `invalid` instead of
        failing the whole page.

        Args:
            page: 1-based page number
            limit: Members per page
            filters: Optional listing filters

        Raises:
            InvalidResponseError: If the envelope or its data list is malformed
        """
        params: List[Tuple[str, Any]] = [("page", page), ("limit", limit)]
        if filters:
            params.extend(filters.to_query_params())

        envelope = await self.request("GET", "/members", params=params)

        raw_members = envelope.data or []
        if not isinstance(raw_members, list):
            raise InvalidResponseError("Member listing data is not a list", details=raw_members)

        members = []
        invalid = []
        for item in raw_members:
            try:
                members.append(self._parse_model(RemoteMember, item))
            except InvalidResponseError as e:
                external_id = item.get("id") if isinstance(item, dict) else None
                if external_id is not None:
                    external_id = str(external_id)
                invalid.append(InvalidMember(external_id=external_id, error=e))

        pagination = envelope.pagination or Pagination(
            page=page, limit=limit, total=len(raw_members), has_more=False
        )

        if invalid:
            logger.warning(f"⚠️ Members page {page}: {len(invalid)} invalid record(s) skipped")
        logger.debug(f"Fetched members page {page}: {len(members)} records (has_more={pagination.has_more})")
        return MemberPage(members=members, pagination=pagination, invalid=invalid)

    async def fetch_members(
        self,
        page: int = 1,
        limit: int = 100,
        filters: Optional[MemberFilters] = None,
    ) -> Tuple[List[RemoteMember], Pagination]:
        """
        Fetches one page of valid members.

        Returns:
            Tuple of (members, pagination)
        """
        result = await self.fetch_member_page(page=page, limit=limit, filters=filters)
        return result.members, result.pagination

    async def fetch_member(self, member_id: str) -> RemoteMember:
        """Fetches a single member by InChurch id."""
        envelope = await self.request("GET", f"/members/{member_id}")
        return self._parse_model(RemoteMember, envelope.data)

    async def update_member(self, member_id: str, patch: Dict[str, Any]) -> RemoteMember:
        """
        Updates member fields (PUT). Never cached.

        Args:
            member_id: InChurch member id
            patch: Fields to update, wire (camelCase) format
        """
        envelope = await self.request("PUT", f"/members/{member_id}", json=patch, use_cache=False)
        return self._parse_model(RemoteMember, envelope.data)

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    async def fetch_groups(self) -> List[RemoteGroup]:
        """Fetches every group of the tenant."""
        envelope = await self.request("GET", "/groups")
        raw_groups = envelope.data or []
        if not isinstance(raw_groups, list):
            raise InvalidResponseError("Group listing data is not a list", details=raw_groups)
        return [self._parse_model(RemoteGroup, item) for item in raw_groups]

    # -------------------------------------------------------------------------
    # Health & utilities
    # -------------------------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        """Calls the uncached health endpoint."""
        envelope = await self.request("GET", "/health", use_cache=False)
        return envelope.data or {}

    async def check_connection(self) -> bool:
        """Returns True when the API is reachable with these credentials."""
        try:
            await self.health_check()
            return True
        except InChurchError as e:
            logger.warning(f"⚠️ InChurch connection check failed: {e.code} - {e.message}")
            return False

    @staticmethod
    def _parse_model(model, data: Any):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise InvalidResponseError(
                f"Invalid {model.__name__} payload",
                details=e.errors(include_url=False),
            ) from e

    def get_rate_limit_info(self) -> RateLimitInfo:
        return self.rate_limiter.get_info()

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    async def close(self):
        """Closes the HTTP client."""
        await self._client.aclose()
        logger.debug("InChurchClient closed")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
