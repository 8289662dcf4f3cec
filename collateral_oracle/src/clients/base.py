"""Base client interface and shared HTTP client management.

All HTTP clients inherit from BaseClient. A shared httpx.AsyncClient is used
across all clients to avoid connection overhead. GraphQL endpoints are
reached through GraphQLClient, which wraps the query/variables envelope and
surfaces the ``errors`` array of a response as an exception.

.. code-block:: python

    class NamesClient(GraphQLClient):
        QUERY = "query ($name: String!) { names(name: $name) { items { name } } }"

        async def names(self, name: str) -> list[dict]:
            data = await self.query(self.QUERY, {"name": name})
            return data["names"]["items"]
"""

import logging
from typing import Any, ClassVar

import httpx

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """Base exception for client errors."""

    pass


class ClientConfigError(ClientError):
    """Raised when client configuration is invalid (e.g., missing endpoint)."""

    pass


class ClientHTTPError(ClientError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class GraphQLError(ClientError):
    """Raised when a GraphQL response carries an ``errors`` array.

    :ivar errors: Raw error objects from the response.
    """

    def __init__(self, errors: list[dict]):
        """Initialize the GraphQL error.

        :param errors: List of GraphQL error objects.
        """
        self.errors = errors
        messages = "; ".join(str(e.get("message", e)) for e in errors)
        super().__init__(f"GraphQL errors: {messages}")


class BaseClient:
    """Base class for HTTP clients.

    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Default timeout for HTTP requests (seconds)
    DEFAULT_TIMEOUT = 10.0

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize the client.

        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Request timeout in seconds (default: 10).
        """
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def has_api_key(self) -> bool:
        """Check if this client has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all client instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if BaseClient._shared_client is None or BaseClient._shared_client.is_closed:
            BaseClient._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return BaseClient._shared_client

    @classmethod
    def set_shared_client(cls, client: httpx.AsyncClient | None) -> None:
        """Replace the shared HTTP client (e.g., with a mock transport)."""
        BaseClient._shared_client = client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseClient._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseClient._shared_client = None

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises ClientHTTPError: On non-2xx response.
        :raises ClientError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ClientError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise ClientError(f"Request failed: {e}") from e
        return self._check_response("GET", url, response)

    async def _post(
        self,
        url: str,
        *,
        json: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP POST request using the shared client.

        :param url: Request URL.
        :param json: Optional JSON body.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises ClientHTTPError: On non-2xx response.
        :raises ClientError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.post(
                url,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ClientError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise ClientError(f"Request failed: {e}") from e
        return self._check_response("POST", url, response)

    @staticmethod
    def _check_response(method: str, url: str, response: httpx.Response) -> httpx.Response:
        if not response.is_success:
            logger.debug(
                "HTTP %s %s failed with status %s: %s",
                method,
                url,
                response.status_code,
                response.text[:200],
            )
            raise ClientHTTPError(response.status_code, response.text[:200])
        return response


class GraphQLClient(BaseClient):
    """Client for a GraphQL endpoint authenticated with a static API key.

    :ivar url: GraphQL endpoint URL.
    """

    API_KEY_HEADER = "API-KEY"

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize the GraphQL client.

        :param url: GraphQL endpoint URL.
        :param api_key: Optional API key sent in the ``API-KEY`` header.
        :param timeout: Request timeout in seconds.
        :raises ClientConfigError: If no URL is given.
        """
        if not url:
            raise ClientConfigError("GraphQL endpoint URL is required")
        super().__init__(api_key=api_key, timeout=timeout)
        self.url = url

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.has_api_key:
            headers[self.API_KEY_HEADER] = self.api_key
        return headers

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict:
        """Run a GraphQL query and return its ``data`` object.

        :param query: GraphQL document.
        :param variables: Optional query variables.
        :returns: The ``data`` object of the response.
        :raises GraphQLError: If the response contains errors.
        :raises ClientError: On transport or decoding failures.
        """
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        response = await self._post(self.url, json=payload, headers=self.headers)
        try:
            body = response.json()
        except ValueError as e:
            raise ClientError(f"Invalid JSON response: {e}") from e

        if not isinstance(body, dict):
            raise ClientError(f"Unexpected GraphQL response type: {type(body).__name__}")

        if body.get("errors"):
            raise GraphQLError(body["errors"])

        data = body.get("data")
        if data is None:
            raise ClientError("GraphQL response has no data")
        if not isinstance(data, dict):
            raise ClientError(f"Unexpected GraphQL data type: {type(data).__name__}")
        return data
