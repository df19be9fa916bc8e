"""HTTP client with timeouts and circuit breaker."""
import httpx
from typing import Optional, Dict, Any
import structlog
from datetime import datetime

logger = structlog.get_logger(__name__)


class CircuitBreaker:
    """Simple circuit breaker to avoid hammering down services."""

    def __init__(self, service_name: str = "", failure_threshold: int = 5, timeout: int = 60):
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = "closed"  # closed, open, half_open

    def call_succeeded(self):
        """Reset on success."""
        if self.state != "closed":
            logger.info("circuit_breaker_closed", service=self.service_name)
        self.failure_count = 0
        self.state = "closed"

    def call_failed(self):
        """Record failure."""
        self.failure_count += 1
        self.last_failure_time = datetime.now()

        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            self.state = "open"
            logger.warning(
                "circuit_breaker_opened",
                service=self.service_name,
                failure_count=self.failure_count,
                threshold=self.failure_threshold
            )

    def can_attempt(self) -> bool:
        """Check if we can attempt a call."""
        if self.state == "closed":
            return True

        if self.state == "open":
            if self.last_failure_time:
                elapsed = (datetime.now() - self.last_failure_time).total_seconds()
                if elapsed >= self.timeout:
                    self.state = "half_open"
                    logger.info("circuit_breaker_half_open", service=self.service_name)
                    return True
            return False

        # half_open: allow one attempt
        return True


class CircuitOpenError(httpx.HTTPError):
    """Raised instead of sending a request while the breaker is open."""


class RobustHTTPClient:
    """HTTP client with timeouts and a circuit breaker per service.

    Failed requests are not retried: callers see the first error.
    """

    def __init__(
        self,
        default_timeout: float = 30.0,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.default_timeout = default_timeout
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}
        self.circuit_breaker_threshold = circuit_breaker_threshold
        self.circuit_breaker_timeout = circuit_breaker_timeout
        self.transport = transport

    def _get_circuit_breaker(self, service_name: str) -> CircuitBreaker:
        """Get or create circuit breaker for a service."""
        if service_name not in self.circuit_breakers:
            self.circuit_breakers[service_name] = CircuitBreaker(
                service_name=service_name,
                failure_threshold=self.circuit_breaker_threshold,
                timeout=self.circuit_breaker_timeout
            )
        return self.circuit_breakers[service_name]

    async def request_async(
        self,
        method: str,
        url: str,
        service_name: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Request with circuit breaker; raises httpx.HTTPError on failure or non-2xx."""
        timeout = timeout or self.default_timeout
        cb = self._get_circuit_breaker(service_name)

        if not cb.can_attempt():
            raise CircuitOpenError(f"Circuit breaker open for {service_name}")

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.request(
                    method, url, headers=headers, params=params, json=json, content=content
                )
                response.raise_for_status()
                cb.call_succeeded()
                return response
        except httpx.HTTPError as e:
            cb.call_failed()
            logger.error(
                "http_request_failed",
                service=service_name,
                method=method,
                url=url,
                error=str(e),
                circuit_breaker_state=cb.state
            )
            raise

    async def get_async(self, url: str, service_name: str, **kwargs: Any) -> httpx.Response:
        """GET request with circuit breaker."""
        return await self.request_async("GET", url, service_name, **kwargs)

    async def post_async(self, url: str, service_name: str, **kwargs: Any) -> httpx.Response:
        """POST request with circuit breaker."""
        return await self.request_async("POST", url, service_name, **kwargs)

    async def delete_async(self, url: str, service_name: str, **kwargs: Any) -> httpx.Response:
        """DELETE request with circuit breaker."""
        return await self.request_async("DELETE", url, service_name, **kwargs)

    async def get_bytes_async(self, url: str, service_name: str, **kwargs: Any) -> bytes:
        """Download a binary body (images)."""
        response = await self.get_async(url, service_name, **kwargs)
        return response.content


# Global instance
_http_client: Optional[RobustHTTPClient] = None


def get_http_client() -> RobustHTTPClient:
    """Get global HTTP client instance."""
    global _http_client
    if _http_client is None:
        _http_client = RobustHTTPClient(
            default_timeout=30.0,
            circuit_breaker_threshold=5,
            circuit_breaker_timeout=60
        )
    return _http_client
