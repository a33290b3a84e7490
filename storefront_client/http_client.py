"""
Storefront REST client

Single chokepoint for every outbound call to the storefront backend: builds
absolute URLs, injects the bearer token, enforces the per-attempt timeout,
retries transient failures with linear backoff and maps responses onto the
error taxonomy in `errors.py`.

The backend intermittently prefixes JSON bodies with a UTF-8 byte-order-mark,
so bodies are read as text and stripped before parsing.
"""

import asyncio
import json
import shlex
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from .config import APIConfig, API_ENDPOINTS, ERROR_MESSAGES, HTTP_STATUS
from .errors import (
    ApiError,
    AuthenticationError,
    ClientError,
    NetworkError,
    ResponseParseError,
    ServerError,
    ValidationError,
)
from .auth import AuthSession, LoginNavigator, NullNavigator
from .utils.logger import get_logger

logger = get_logger(__name__)

BOM = "\ufeff"
BODY_METHODS = ("POST", "PUT", "PATCH")


def strip_bom(text: str) -> str:
    """Remove a single leading byte-order-mark character"""
    return text[1:] if text.startswith(BOM) else text


def parse_json_body(text: str) -> Any:
    """Parse a response body after BOM stripping; raises ValueError if not JSON"""
    return json.loads(strip_bom(text))


class HttpClient:
    """Async JSON client with retry, auth-header injection and error mapping"""

    def __init__(
        self,
        api_config: APIConfig,
        session: AuthSession,
        navigator: Optional[LoginNavigator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None
    ):
        """
        Initialize the client

        Args:
            api_config: Base URL, timeout and retry settings
            session: Token accessor; cleared on 401
            navigator: Receives the redirect-to-login signal on 401
            transport: Optional httpx transport (mock transports in tests)
            sleep: Backoff sleeper, defaults to asyncio.sleep
        """
        self.base_url = api_config.base_url.rstrip("/")
        self.timeout = api_config.timeout
        self.retry_attempts = max(1, api_config.retry_attempts)
        self.retry_delay = api_config.retry_delay
        self.upload_timeout_multiplier = api_config.upload_timeout_multiplier
        self.debug_curl = api_config.debug_curl
        self.default_headers = api_config.default_headers

        self.session = session
        self.navigator = navigator or NullNavigator()
        self.transport = transport
        self._sleep = sleep or asyncio.sleep

        self.limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)

        logger.info(f"HttpClient initialized with base_url: {self.base_url}")

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    def _generate_curl_command(self, method: str, url: str, headers: Dict,
                               params: Optional[Dict], json_data: Optional[Any]) -> str:
        """Generate curl command for debugging"""
        curl_parts = ['curl', '-X', method.upper()]

        for key, value in headers.items():
            if key.lower() == 'authorization':
                value = 'Bearer ***'
            curl_parts.extend(['-H', shlex.quote(f'{key}: {value}')])

        if json_data is not None:
            curl_parts.extend(['-d', shlex.quote(json.dumps(json_data, separators=(',', ':')))])

        if params:
            url = f"{url}?{urlencode(params)}"

        curl_parts.append(shlex.quote(url))
        return ' '.join(curl_parts)

    async def _auth_headers(self, require_auth: bool) -> Dict[str, str]:
        if not require_auth:
            return {}
        token = await self.session.get_token()
        if not token:
            # No token means no request; never retried
            raise AuthenticationError("Authentication required")
        return {"Authorization": f"Bearer {token}"}

    async def _handle_auth_error(self) -> None:
        """Clear session state and send the user back to login"""
        try:
            await self.session.logout()
        except Exception as e:
            logger.warning(f"Failed to clear auth data: {e}")
        self.navigator.redirect_to_login()

    async def _handle_response(self, response: httpx.Response, endpoint: str,
                               require_auth: bool) -> Dict[str, Any]:
        """Map a response onto a parsed body or an ApiError"""
        status = response.status_code
        text = response.text

        body: Any = None
        parse_failed = False
        if strip_bom(text).strip():
            try:
                body = parse_json_body(text)
            except ValueError:
                parse_failed = True
                logger.error(f"[RESPONSE] {endpoint} -> {status}: body is not JSON: {text[:200]!r}")

        payload = body if isinstance(body, dict) else {}
        message = payload.get("message")
        errors = payload.get("errors")

        if 200 <= status < 300:
            if parse_failed:
                raise ResponseParseError(status, text[:200])
            if body is None:
                return {"success": True, "data": None}
            return body

        if status == HTTP_STATUS.UNAUTHORIZED:
            if require_auth:
                await self._handle_auth_error()
            raise AuthenticationError(ERROR_MESSAGES["UNAUTHORIZED"], errors)

        if status == HTTP_STATUS.VALIDATION_ERROR:
            raise ValidationError(message or ERROR_MESSAGES["VALIDATION_ERROR"], errors)

        if 400 <= status < 500:
            raise ClientError(message or ERROR_MESSAGES["UNKNOWN"], status, errors)

        if status >= HTTP_STATUS.SERVER_ERROR:
            raise ServerError(message or ERROR_MESSAGES["SERVER_ERROR"], status)

        raise ApiError(message or ERROR_MESSAGES["UNKNOWN"], status)

    async def _attempt(
        self,
        method: str,
        url: str,
        endpoint: str,
        headers: Dict[str, str],
        timeout: float,
        require_auth: bool,
        params: Optional[Dict] = None,
        json_data: Optional[Any] = None,
        files: Optional[Any] = None,
        form_data: Optional[Dict] = None
    ) -> Dict[str, Any]:
        """Run one request attempt bounded by `timeout` seconds"""
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), limits=self.limits,
                                         transport=self.transport) as client:
                response = await asyncio.wait_for(
                    client.request(
                        method=method,
                        url=url,
                        params=params,
                        json=json_data,
                        files=files,
                        data=form_data,
                        headers=headers
                    ),
                    timeout=timeout
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise NetworkError(ERROR_MESSAGES["TIMEOUT"], HTTP_STATUS.TIMEOUT) from e
        except httpx.RequestError as e:
            logger.error(f"Network/connection error for {endpoint}: {e}")
            raise NetworkError(ERROR_MESSAGES["NETWORK_ERROR"], HTTP_STATUS.NETWORK_FAILURE) from e

        logger.debug(f"{method} {url} -> {response.status_code}")
        return await self._handle_response(response, endpoint, require_auth)

    async def request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Any] = None,
        require_auth: bool = False,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
        skip_retry: bool = False
    ) -> Dict[str, Any]:
        """
        Make an HTTP request with retry logic

        Args:
            method: HTTP verb
            endpoint: Path relative to the configured base URL
            data: JSON body, sent only for POST/PUT/PATCH
            require_auth: Attach the bearer token; fail fast when absent
            params: Query-string parameters
            headers: Extra request headers
            skip_retry: Make a single attempt only

        Returns:
            Parsed response envelope

        Raises:
            ApiError: One of the taxonomy subclasses
        """
        method = method.upper()
        url = self._build_url(endpoint)

        request_headers = dict(self.default_headers)
        if headers:
            request_headers.update(headers)
        request_headers.update(await self._auth_headers(require_auth))

        json_data = data if method in BODY_METHODS else None

        if self.debug_curl:
            curl_cmd = self._generate_curl_command(method, url, request_headers, params, json_data)
            logger.info(f"CURL: {curl_cmd}")

        logger.info(f"[REQUEST] {method} {url}")
        if json_data is not None:
            logger.debug(f"[REQUEST] Body: {json.dumps(json_data, default=str)}")

        max_attempts = 1 if skip_retry else self.retry_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                result = await self._attempt(
                    method, url, endpoint, request_headers, self.timeout, require_auth,
                    params=params, json_data=json_data
                )
                logger.info(f"[RESPONSE] {method} {url} ok (attempt {attempt})")
                return result
            except ApiError as error:
                logger.error(f"[RESPONSE] {method} {url} failed (attempt {attempt}/{max_attempts}): {error!r}")

                if not error.is_retryable() or attempt == max_attempts:
                    raise

                delay = self.retry_delay * attempt
                logger.info(f"Retrying {method} {endpoint} in {delay:.1f}s")
                await self._sleep(delay)

        raise ApiError(ERROR_MESSAGES["UNKNOWN"])  # pragma: no cover

    async def get(self, endpoint: str, require_auth: bool = False,
                  params: Optional[Dict] = None, skip_retry: bool = False) -> Dict[str, Any]:
        return await self.request("GET", endpoint, require_auth=require_auth,
                                  params=params, skip_retry=skip_retry)

    async def post(self, endpoint: str, data: Optional[Any] = None, require_auth: bool = False,
                   skip_retry: bool = False) -> Dict[str, Any]:
        return await self.request("POST", endpoint, data=data if data is not None else {},
                                  require_auth=require_auth, skip_retry=skip_retry)

    async def put(self, endpoint: str, data: Optional[Any] = None, require_auth: bool = False,
                  skip_retry: bool = False) -> Dict[str, Any]:
        return await self.request("PUT", endpoint, data=data if data is not None else {},
                                  require_auth=require_auth, skip_retry=skip_retry)

    async def patch(self, endpoint: str, data: Optional[Any] = None, require_auth: bool = False,
                    skip_retry: bool = False) -> Dict[str, Any]:
        return await self.request("PATCH", endpoint, data=data if data is not None else {},
                                  require_auth=require_auth, skip_retry=skip_retry)

    async def delete(self, endpoint: str, require_auth: bool = False,
                     skip_retry: bool = False) -> Dict[str, Any]:
        return await self.request("DELETE", endpoint, require_auth=require_auth, skip_retry=skip_retry)

    async def upload(
        self,
        endpoint: str,
        files: Dict[str, Any],
        data: Optional[Dict[str, str]] = None,
        require_auth: bool = True
    ) -> Dict[str, Any]:
        """
        Multipart upload; single attempt with a longer timeout

        Args:
            endpoint: Path relative to the configured base URL
            files: httpx-style files mapping, e.g. {"file": ("a.png", b"...", "image/png")}
            data: Extra form fields
            require_auth: Attach the bearer token
        """
        url = self._build_url(endpoint)
        # httpx sets the multipart Content-Type with its boundary
        request_headers = {"Accept": "application/json"}
        request_headers.update(await self._auth_headers(require_auth))

        logger.info(f"[REQUEST] POST {url} [multipart: {', '.join(files.keys())}]")

        try:
            result = await self._attempt(
                "POST", url, endpoint, request_headers,
                self.timeout * self.upload_timeout_multiplier, require_auth,
                files=files, form_data=data
            )
        except ApiError as error:
            logger.error(f"[RESPONSE] POST {url} upload failed: {error!r}")
            raise

        logger.info(f"[RESPONSE] POST {url} upload ok")
        return result

    async def check_status(self, endpoint: Optional[str] = None) -> bool:
        """Single-attempt reachability check against the status endpoint"""
        try:
            response = await self.get(endpoint or API_ENDPOINTS["public"]["status"], skip_retry=True)
            return bool(response.get("success"))
        except ApiError as e:
            logger.debug(f"Status check failed: {e!r}")
            return False

    async def test_auth(self) -> bool:
        """Whether the stored token is still accepted"""
        try:
            response = await self.get(API_ENDPOINTS["auth"]["profile"], require_auth=True, skip_retry=True)
            return bool(response.get("success"))
        except ApiError:
            return False
