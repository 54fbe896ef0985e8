import json
import time
from typing import Dict, Any, Optional

import requests
from loguru import logger

from volumebot.config import HTTP_TIMEOUT
from volumebot.errors import RateLimitedError, SwapBuildError


class ApiClientError(SwapBuildError):
    """Base exception for API client errors."""
    pass


class ApiTimeoutError(ApiClientError):
    """Exception raised when an API request times out."""
    pass


class ApiBadResponseError(ApiClientError):
    """Exception raised when the API returns a non-200 status code."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApiRateLimitError(ApiBadResponseError, RateLimitedError):
    """Exception raised when the API answers with HTTP 429."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        ApiBadResponseError.__init__(self, message, status_code=429)
        self.retry_after = retry_after


def _parse_retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ApiClient:
    """Base client for the HTTP services the bot talks to."""

    def __init__(self, base_url: str, timeout: int = HTTP_TIMEOUT, session: Optional[requests.Session] = None):
        """
        Initialize the API client.

        Args:
            base_url: The base URL for the API
            timeout: Request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'VolumeBot/1.0'
        })

    def _make_request(self, method: str, endpoint: str, raw: bool = False, **kwargs) -> Any:
        """
        Make an HTTP request to the API.

        Args:
            method: HTTP method (get, post, etc.)
            endpoint: API endpoint, appended to the base URL
            raw: Return the response body as bytes instead of decoded JSON
            **kwargs: Additional arguments to pass to requests

        Returns:
            The JSON response data, or raw bytes when ``raw`` is set

        Raises:
            ApiTimeoutError: If the request times out
            ApiRateLimitError: If the API throttled the request
            ApiBadResponseError: If the API returns a non-200 status code
            ApiClientError: On transport or decoding failures
        """
        url = f"{self.base_url}{endpoint}"

        # Set default timeout if not provided
        if 'timeout' not in kwargs:
            kwargs['timeout'] = self.timeout

        start_time = time.time()

        try:
            logger.bind(method=method, url=url, params=kwargs.get('params'), json=kwargs.get('json')).debug(
                f"Making {method.upper()} request to {url}"
            )

            response = self.session.request(method.upper(), url, **kwargs)
            elapsed = time.time() - start_time

            logger.bind(status_code=response.status_code, elapsed_time=elapsed, url=url).debug(
                f"Received response from {url} in {elapsed:.2f}s"
            )

        except requests.exceptions.Timeout:
            logger.bind(url=url, timeout=self.timeout).error(f"Request to {url} timed out after {self.timeout}s")
            raise ApiTimeoutError(f"Request to {url} timed out")

        except requests.exceptions.RequestException as e:
            logger.bind(url=url, error=str(e)).error(f"Request to {url} failed: {str(e)}")
            raise ApiClientError(f"Request failed: {str(e)}") from e

        if response.status_code == 429:
            retry_after = _parse_retry_after(response)
            logger.bind(retry_after=retry_after).warning(f"Rate limited by {url}")
            raise ApiRateLimitError(f"API returned 429: {response.text}", retry_after=retry_after)

        if response.status_code not in (200, 201):
            logger.bind(status_code=response.status_code, response_text=response.text).error(
                f"API error: {response.status_code} {response.text}"
            )
            raise ApiBadResponseError(
                f"API returned {response.status_code}: {response.text}",
                status_code=response.status_code
            )

        if raw:
            return response.content

        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Failed to parse JSON response: {str(e)}")
            raise ApiClientError(f"Failed to parse JSON response: {str(e)}") from e

    def close(self):
        self.session.close()
