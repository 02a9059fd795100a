"""
Shop Admin API Client

Read-only access to the commerce platform's order data:
- Cursor-paginated GraphQL order query (orders filtered by product + date)
- REST orders.json listing paginated by created_at boundary
- Exponential backoff with jitter on throttling

All calls are sequential. The platform enforces a global request budget, so
callers pace themselves with fixed delays instead of running fetches in
parallel.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from app.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

THROTTLE_MARKERS = ("throttled", "rate limit")


class ShopAPIError(Exception):
    """Error returned by the shop Admin API."""

    def __init__(self, message: str, status_code: int = None, details: Dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ShopThrottledError(ShopAPIError):
    """The platform rejected the request because of its rate limit."""


class ShopGraphQLError(ShopAPIError):
    """The GraphQL endpoint answered 200 with an `errors` payload."""


class ShopConfigurationError(Exception):
    """Shop domain or access token is not configured."""


def is_throttling_error(error: BaseException) -> bool:
    """Whether an error is a throttling signal worth retrying."""
    if isinstance(error, ShopThrottledError):
        return True
    if isinstance(error, ShopAPIError) and error.status_code == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in THROTTLE_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for throttled requests (seconds)."""
    max_retries: int = 5
    initial_delay: float = 1.5
    max_jitter: float = 0.5

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            max_retries=config.SHOP_MAX_RETRIES,
            initial_delay=config.SHOP_RETRY_INITIAL_DELAY,
            max_jitter=config.SHOP_RETRY_MAX_JITTER,
        )

    def delay_for(self, attempt: int, jitter: float) -> float:
        """Delay before retry number `attempt` (0-based)."""
        return self.initial_delay * (2 ** attempt) + jitter


class RateLimitedClient:
    """
    Executes platform calls with exponential backoff on throttling.

    Usage:
        limiter = RateLimitedClient(RetryPolicy(max_retries=3))
        data = await limiter.execute(lambda: client.post(...))

    Non-throttling errors propagate immediately. Once the retries are used up
    the last throttling error propagates. Retrying stalls the caller for
    several seconds, so this must not be used inside latency-critical paths.
    """

    def __init__(
        self,
        policy: RetryPolicy = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random = None,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        retries = 0
        while True:
            try:
                return await fn()
            except Exception as e:
                if not is_throttling_error(e) or retries >= self.policy.max_retries:
                    raise
                jitter = self._rng.uniform(0, self.policy.max_jitter)
                delay = self.policy.delay_for(retries, jitter)
                retries += 1
                logger.warning(
                    f"Request throttled. Retrying in {delay * 1000:.0f}ms. "
                    f"Retry {retries}/{self.policy.max_retries}"
                )
                await self._sleep(delay)


ORDER_FIELDS = """
                id
                name
                createdAt
                displayFinancialStatus
                totalPriceSet { shopMoney { amount currencyCode } }
                totalShippingPriceSet { shopMoney { amount currencyCode } }
                customer { displayName email }
                lineItems(first: 50) {
                  edges {
                    node {
                      id
                      title
                      quantity
                      product { id title }
                      variant { id title price }
                      discountedTotalSet { shopMoney { amount currencyCode } }
                      originalTotalSet { shopMoney { amount currencyCode } }
                    }
                  }
                }
                refunds {
                  id
                  createdAt
                  refundLineItems(first: 50) {
                    edges {
                      node {
                        quantity
                        lineItem { id product { id } }
                        subtotalSet { shopMoney { amount } }
                      }
                    }
                  }
                }
"""

ORDERS_QUERY = (
    "query getOrdersByProductId($first: Int!, $cursor: String, $queryString: String!) {\n"
    "  orders(first: $first, query: $queryString, after: $cursor) {\n"
    "    edges {\n"
    "      node {" + ORDER_FIELDS + "      }\n"
    "    }\n"
    "    pageInfo { hasNextPage endCursor }\n"
    "  }\n"
    "}\n"
)


class ShopClient:
    """
    Client for the shop Admin API.

    Usage:
        async with ShopClient() as client:
            page = await client.query_orders(query_string, first=50)
            rest_orders = await client.list_orders(created_at_min=..., limit=50)
    """

    def __init__(
        self,
        config: Settings = None,
        limiter: RateLimitedClient = None,
        http_client: httpx.AsyncClient = None,
    ):
        self.config = config or default_settings
        if not self.config.shop_configured:
            raise ShopConfigurationError(
                "Shop API credentials are not configured (SHOP_DOMAIN / SHOP_ACCESS_TOKEN)"
            )
        self.limiter = limiter or RateLimitedClient(RetryPolicy.from_settings(self.config))
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def base_url(self) -> str:
        domain = self.config.SHOP_DOMAIN.replace("https://", "").replace("http://", "").rstrip("/")
        return f"https://{domain}/admin/api/{self.config.SHOP_API_VERSION}"

    async def __aenter__(self) -> "ShopClient":
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.config.SHOP_REQUEST_TIMEOUT)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.config.SHOP_ACCESS_TOKEN,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict = None,
        body: Dict = None
    ) -> Dict:
        """Single HTTP round trip, mapped onto the ShopAPIError hierarchy."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.config.SHOP_REQUEST_TIMEOUT)

        try:
            response = await self._http.request(
                method=method,
                url=f"{self.base_url}/{path}",
                headers=self._headers(),
                params=params,
                json=body,
            )
        except httpx.HTTPError as e:
            raise ShopAPIError(f"Shop request failed: {e}") from e

        if response.status_code == 429:
            raise ShopThrottledError(
                "Shop API rate limit exceeded (429)",
                status_code=429,
                details={"retry_after": response.headers.get("Retry-After")},
            )
        if response.status_code >= 400:
            raise ShopAPIError(
                f"Shop API error: {response.text}",
                status_code=response.status_code,
                details={"response": response.text},
            )
        return response.json()

    async def _call(self, method: str, path: str, params: Dict = None, body: Dict = None) -> Dict:
        return await self.limiter.execute(lambda: self._request(method, path, params=params, body=body))

    async def query_orders(
        self,
        query_string: str,
        first: int,
        cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Run one page of the cursor-paginated order query.

        Returns the `orders` connection: {"edges": [...], "pageInfo": {...}}.
        GraphQL-level throttling is raised as ShopThrottledError so the
        backoff applies; other GraphQL errors raise ShopGraphQLError.
        """
        async def run_query() -> Dict[str, Any]:
            payload = await self._request(
                "POST",
                "graphql.json",
                body={
                    "query": ORDERS_QUERY,
                    "variables": {"first": first, "cursor": cursor, "queryString": query_string},
                },
            )
            errors = payload.get("errors")
            if errors:
                messages = "; ".join(str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in errors)
                codes = {
                    (err.get("extensions") or {}).get("code")
                    for err in errors if isinstance(err, dict)
                }
                if "THROTTLED" in codes or "throttled" in messages.lower():
                    raise ShopThrottledError(f"Throttled: {messages}", details={"errors": errors})
                raise ShopGraphQLError(f"GraphQL errors: {messages}", details={"errors": errors})
            data = payload.get("data") or {}
            return data.get("orders") or {
                "edges": [],
                "pageInfo": {"hasNextPage": False, "endCursor": None},
            }

        return await self.limiter.execute(run_query)

    async def list_orders(
        self,
        limit: int,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List orders (REST), newest first, within a created_at window."""
        params = {"status": "any", "limit": limit, "order": "created_at desc"}
        if created_at_min:
            params["created_at_min"] = created_at_min
        if created_at_max:
            params["created_at_max"] = created_at_max

        result = await self._call("GET", "orders.json", params=params)
        return result.get("orders", [])
