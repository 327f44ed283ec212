"""HTTP client for a running hookview server.

Used by the CLI to query server health and to request shutdown.
"""

from typing import Any

import httpx


class HookviewClientError(Exception):
    """Base exception for hookview client errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class HookviewAuthError(HookviewClientError):
    """Authentication error (401)."""

    pass


class HookviewConnectionError(HookviewClientError):
    """Connection error (server unreachable)."""

    pass


class HookviewClient:
    """HTTP client for the viewer API.

    Example:
        client = HookviewClient("http://127.0.0.1:3456", token="s3cret")
        client.shutdown()
    """

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _request(self, method: str, endpoint: str) -> Any:
        """Make a request and return the decoded JSON body.

        Raises:
            HookviewAuthError: On 401 responses
            HookviewConnectionError: On connection failures
            HookviewClientError: On other errors
        """
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(method, f"{self.base_url}{endpoint}", headers=headers)
        except httpx.ConnectError as e:
            raise HookviewConnectionError(f"Cannot connect to {self.base_url}: {e}") from e
        except httpx.TimeoutException as e:
            raise HookviewConnectionError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise HookviewClientError(f"Request failed: {e}") from e

        if response.status_code == 401:
            raise HookviewAuthError("Invalid or missing shutdown token", status_code=401)
        if response.status_code >= 400:
            raise HookviewClientError(
                f"API error: {response.text.strip()}", status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise HookviewClientError(f"Invalid JSON response: {e}") from e

    def health(self) -> dict[str, Any]:
        """Fetch server health and tail status."""
        return self._request("GET", "/health")

    def shutdown(self) -> dict[str, Any]:
        """Ask the server to shut down."""
        return self._request("POST", "/shutdown")
