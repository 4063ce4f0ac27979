"""
HTTP helper shared by the marketplace adapters, with support for retries on
rate limiting, server errors and timeouts.
"""

import time
from typing import Any, Dict, Optional

import requests
import structlog

from booking_ledger.config import PLATFORM_REQUEST_TIMEOUT_SECONDS
from booking_ledger.metrics import api_latency, api_requests
from booking_ledger.platforms.base import PlatformError, PlatformUnauthorizedError

logger = structlog.get_logger(__name__)

MAX_RETRIES = 2
RETRY_DELAY = 1.0


def should_retry(res: Optional[requests.Response], err: Optional[Exception]) -> bool:
    """
    Determine whether the request should be retried based on response or error.

    Args:
        res (Optional[requests.Response]): Response object if available.
        err (Optional[Exception]): Exception raised by the request, if any.

    Returns:
        bool: True if the request should be retried, False otherwise.
    """
    if res is not None and res.status_code == 429:
        return True
    if isinstance(err, (requests.Timeout, requests.ConnectionError)):
        return True
    if res is not None and 500 <= res.status_code < 600:
        return True
    return False


def send_request(
    platform: str,
    endpoint: str,
    method: str,
    url: str,
    token: Optional[str] = None,
    json: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_retries: int = MAX_RETRIES,
) -> Any:
    """
    Send one request to a marketplace API.

    Args:
        platform (str): Marketplace name, used for metrics and logs.
        endpoint (str): Logical endpoint name (e.g. 'availability').
        method (str): HTTP method.
        url (str): Absolute URL.
        token (Optional[str]): Bearer token, if the call is authenticated.
        json (Optional[Dict[str, Any]]): JSON body.
        data (Optional[Dict[str, Any]]): Form body.
        params (Optional[Dict[str, Any]]): Query parameters.
        headers (Optional[Dict[str, str]]): Extra headers.
        max_retries (int): Retries for transient failures.

    Returns:
        Any: Decoded JSON body, or None for an empty response.

    Raises:
        PlatformUnauthorizedError: On 401/403 so the caller can refresh the credential.
        PlatformError: On other failures, after retries for transient ones.
    """
    request_headers = {"Accept": "application/json", **(headers or {})}
    if token:
        request_headers["Authorization"] = f"Bearer {token}"

    retries = 0

    while True:
        res: Optional[requests.Response] = None
        try:
            logger.debug("platform_request", platform=platform, endpoint=endpoint, method=method)

            start_time = time.time()
            res = requests.request(
                method,
                url,
                headers=request_headers,
                json=json,
                data=data,
                params=params,
                timeout=PLATFORM_REQUEST_TIMEOUT_SECONDS,
            )
            latency = time.time() - start_time

            api_requests.labels(
                platform=platform, endpoint=endpoint, status_code=str(res.status_code)
            ).inc()
            api_latency.labels(platform=platform, endpoint=endpoint).observe(latency)

            if res.status_code in (401, 403):
                raise PlatformUnauthorizedError(
                    f"{platform} rejected the credential ({res.status_code})",
                    status_code=res.status_code,
                )

            res.raise_for_status()
            if not res.content:
                return None
            return res.json()

        except requests.RequestException as err:
            retries += 1
            status_code = res.status_code if res is not None else None
            if retries > max_retries or not should_retry(res, err):
                logger.warning(
                    "platform_request_failed",
                    platform=platform,
                    endpoint=endpoint,
                    status_code=status_code,
                    error=str(err),
                )
                raise PlatformError(
                    f"{platform} {endpoint} request failed: {status_code or err}",
                    status_code=status_code,
                ) from err
            logger.warning(
                "platform_request_retry",
                platform=platform,
                endpoint=endpoint,
                status_code=status_code,
                attempt=retries,
            )
            time.sleep(RETRY_DELAY * retries)
