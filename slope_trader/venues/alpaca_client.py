"""
HTTP client for the Alpaca brokerage REST API.

**Conceptual**: A thin wrapper around HTTP requests to Alpaca's trading and
market-data endpoints. It handles authentication, request construction, error
mapping, and JSON parsing. It does NOT convert payloads into Orders or
PriceSamples; that is LiveGateway's job.

**Why separate HTTP client from the gateway?**
  - The client knows about HTTP, the gateway knows about the domain model.
  - HTTP responses can be mocked without exercising order mapping.
  - Errors are classified once, here, by status code.

**Error mapping**:
  - 401/403 -> AlpacaAuthenticationError (bad or missing keys)
  - 404     -> AlpacaNotFoundError (unknown order/symbol)
  - 429     -> AlpacaRateLimitError
  - 5xx     -> AlpacaServerError
  - other 4xx, timeouts, connection failures -> AlpacaClientError

Every error is a GatewayError, so the strategy logs it and tries again on the
next tick instead of crashing the trading loop.
"""

import logging
from typing import Any, Dict, Optional

import requests

from slope_trader.config.settings import AlpacaSettings
from slope_trader.venues.base import GatewayError

logger = logging.getLogger(__name__)


class AlpacaClientError(GatewayError):
    """
    Base exception for Alpaca API client errors.

    Callers can catch AlpacaClientError for every Alpaca failure, or a
    subclass for fine-grained handling.
    """
    pass


class AlpacaAuthenticationError(AlpacaClientError):
    """
    Raised when the API keys are invalid or missing (401/403).

    **Recovery**: Check ALPACA_API_KEY_ID and ALPACA_API_SECRET_KEY.
    """
    pass


class AlpacaNotFoundError(AlpacaClientError):
    """Raised for 404: the order or symbol does not exist."""
    pass


class AlpacaRateLimitError(AlpacaClientError):
    """
    Raised when the API rate limit is exceeded (429).

    **Recovery**: Slow down; the trading loop retries on its next tick.
    """
    pass


class AlpacaServerError(AlpacaClientError):
    """Raised when Alpaca returns a 5xx server error."""
    pass


class AlpacaClient:
    """
    Thin HTTP client for Alpaca's v2 REST API.

    **Responsibilities**:
      - Add the APCA-API-KEY-ID / APCA-API-SECRET-KEY headers
      - Make HTTP requests with a timeout
      - Map HTTP failures onto the AlpacaClientError hierarchy
      - Return parsed JSON (dicts/lists) untouched

    **Example usage**:
        >>> settings = AlpacaSettings.from_env()
        >>> with AlpacaClient(settings) as client:
        ...     account = client.get_account()
        ...     print(account["cash"])
    """

    def __init__(self, settings: AlpacaSettings):
        """
        Args:
            settings: Alpaca configuration (keys, base URLs, timeout).
        """
        self.settings = settings
        self.session = requests.Session()

        self.session.headers.update({
            "APCA-API-KEY-ID": self.settings.api_key_id,
            "APCA-API-SECRET-KEY": self.settings.api_secret_key,
            "Accept": "application/json",
            "User-Agent": "slope_trader/1.0",
        })

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform one HTTP request and return the decoded JSON body.

        Returns None for empty bodies (e.g., 204 No Content on cancel).

        Raises:
            AlpacaClientError: Or a subclass, for every failure.
        """
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self.settings.timeout_seconds,
            )
        except requests.Timeout as e:
            raise AlpacaClientError(
                f"Request to {url} timed out after {self.settings.timeout_seconds}s."
            ) from e
        except requests.ConnectionError as e:
            raise AlpacaClientError(
                f"Failed to connect to Alpaca at {url}. Check network connection and base URL."
            ) from e
        except requests.RequestException as e:
            raise AlpacaClientError(f"HTTP request failed: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise AlpacaAuthenticationError(
                f"Authentication failed (status {status}). "
                f"Check your Alpaca API keys. Response: {response.text}"
            )
        if status == 404:
            raise AlpacaNotFoundError(f"Not found: {method} {url}. Response: {response.text}")
        if status == 429:
            raise AlpacaRateLimitError(f"Rate limit exceeded. Response: {response.text}")
        if status >= 500:
            raise AlpacaServerError(
                f"Alpaca server error (status {status}). Response: {response.text}"
            )
        if 400 <= status < 500:
            raise AlpacaClientError(
                f"Client error (status {status}). Request may be malformed. Response: {response.text}"
            )

        if status == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise AlpacaClientError(
                f"Failed to parse JSON response: {e}. Response: {response.text}"
            ) from e

    def place_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit an order (POST /v2/orders).

        Args:
            payload: Alpaca order body, e.g. {"symbol": "SPY", "qty": "10",
                "side": "buy", "type": "market", "time_in_force": "day"}.
        """
        logger.info("placing %s order for %s %s", payload.get("side"), payload.get("qty"), payload.get("symbol"))
        return self._request("POST", f"{self.settings.base_url}/v2/orders", json=payload)

    def cancel_order(self, order_id: str) -> None:
        self._request("DELETE", f"{self.settings.base_url}/v2/orders/{order_id}")

    def get_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{self.settings.base_url}/v2/orders/{order_id}")

    def cancel_all_orders(self) -> None:
        self._request("DELETE", f"{self.settings.base_url}/v2/orders")

    def close_all_positions(self) -> None:
        self._request("DELETE", f"{self.settings.base_url}/v2/positions", params={"cancel_orders": "true"})

    def get_account(self) -> Dict[str, Any]:
        return self._request("GET", f"{self.settings.base_url}/v2/account")

    def get_clock(self) -> Dict[str, Any]:
        """Market clock: is_open, next_open, next_close (RFC 3339 timestamps)."""
        return self._request("GET", f"{self.settings.base_url}/v2/clock")

    def get_bars(self, symbol: str, limit: int, timeframe: str = "1Min") -> list:
        """
        Fetch the most recent bars for a symbol, newest first.

        Raises:
            ValueError: If symbol is empty or limit is not positive.
            AlpacaClientError: If the response has no "bars" list.
        """
        if not symbol or not symbol.strip():
            raise ValueError("Symbol cannot be empty")
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        data = self._request(
            "GET",
            f"{self.settings.data_url}/v2/stocks/{symbol.strip().upper()}/bars",
            params={"timeframe": timeframe, "limit": limit, "sort": "desc"},
        )
        bars = (data or {}).get("bars")
        if bars is None:
            return []
        if not isinstance(bars, list):
            raise AlpacaClientError(f"Expected 'bars' to be a list, got {type(bars)}")
        return bars

    def close(self):
        """Close the HTTP session and release resources."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
