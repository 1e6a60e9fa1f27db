"""
Provider HTTP Client - pooled requests session for one adapter

Every outbound call acquires the adapter's rate limiter, carries the
configured timeout and converts all failures into ProviderError.
"""
from typing import Any, Callable, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from ..exceptions import ProviderError, ProviderTimeoutError
from .rate_limiter import RateLimiter
from ...utils.logger import get_logger

logger = get_logger('provider_http')


class ProviderHttpClient:
    """HTTP client bound to a single provider base URL.

    Uses requests.Session with connection pooling so repeated calls to the
    same provider reuse TCP and TLS sessions.
    """

    POOL_CONNECTIONS = 4
    POOL_MAXSIZE = 10
    MAX_RETRIES = 0  # every attempt must pass through the rate limiter

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        timeout: float,
        rate_limiter: RateLimiter,
        auth_headers: Callable[[], Dict[str, str]],
        session: Optional[requests.Session] = None
    ):
        self.provider_name = provider_name
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self._auth_headers = auth_headers

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.POOL_CONNECTIONS,
                pool_maxsize=self.POOL_MAXSIZE,
                max_retries=self.MAX_RETRIES,
                pool_block=False
            )
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        self._session = session

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        authenticated: bool = True
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            params: Query string parameters
            json_body: JSON request body
            data: Form-encoded request body
            headers: Extra headers
            authenticated: Attach the adapter's auth headers

        Returns:
            Parsed JSON object

        Raises:
            ProviderTimeoutError: No answer within the timeout
            ProviderError: Connection failure, non-2xx status or non-JSON body
        """
        self.rate_limiter.acquire()

        url = f'{self.base_url}{path}'
        request_headers = {'Accept': 'application/json'}
        if json_body is not None:
            request_headers['Content-Type'] = 'application/json'
        if authenticated:
            request_headers.update(self._auth_headers())
        if headers:
            request_headers.update(headers)

        # URL only, headers carry secrets
        logger.info(f"[{self.provider_name}] {method} {url}")

        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=request_headers,
                timeout=self.timeout
            )
        except requests.Timeout:
            logger.warning(f"[{self.provider_name}] {method} {path} timed out after {self.timeout}s")
            raise ProviderTimeoutError(self.provider_name, self.timeout)
        except requests.RequestException as e:
            logger.error(f"[{self.provider_name}] {method} {path} failed: {e}")
            raise ProviderError(self.provider_name, f'request failed: {e.__class__.__name__}')

        if not response.ok:
            logger.error(f"[{self.provider_name}] {method} {path} returned HTTP {response.status_code}")
            raise ProviderError(
                self.provider_name,
                f'HTTP {response.status_code}',
                status=response.status_code,
                body=response.text
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        # All provider endpoints answer with a JSON object
        if not isinstance(body, dict):
            raise ProviderError(
                self.provider_name,
                'malformed response',
                status=response.status_code,
                body=response.text
            )
        return body

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return self.request('GET', path, params=params, **kwargs)

    def post(self, path: str, json_body: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return self.request('POST', path, json_body=json_body, **kwargs)

    def post_form(self, path: str, data: Dict[str, Any]) -> Any:
        """Unauthenticated form POST, used for token exchanges"""
        return self.request('POST', path, data=data, authenticated=False)

    @property
    def session(self) -> requests.Session:
        return self._session

    def close(self) -> None:
        self._session.close()
