"""Devento SDK Client"""

import dataclasses
import logging
from contextlib import contextmanager
from typing import Optional, Dict, Iterator, List, Any

import requests

from .box import BoxHandle
from .config import API_PREFIX, ClientConfig, enable_debug_logging
from .exceptions import (
    APIError,
    AuthenticationError,
    DeventoError,
    ValidationError,
    parse_error,
)
from .models import (
    Box,
    BoxConfig,
    BoxStatus,
    CreateDomainRequest,
    DomainResponse,
    DomainsResponse,
    UpdateDomainRequest,
)
from .polling import CancellationToken
from .version import __version__

logger = logging.getLogger(__name__)


class DeventoClient:
    """Client for the Devento sandbox API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        config: Optional[ClientConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: API key; falls back to ``DEVENTO_API_KEY``
            base_url: The base URL of the Devento API; falls back to ``DEVENTO_BASE_URL``
            timeout: Per-request HTTP timeout in seconds
            config: Pre-resolved settings; read from the environment when omitted
            session: A ``requests.Session`` to reuse

        Raises:
            AuthenticationError: No API key was given or configured
        """
        config = config if config is not None else ClientConfig.from_env()
        overrides = {}
        if api_key:
            overrides["api_key"] = api_key
        if base_url:
            overrides["base_url"] = base_url
        if timeout:
            overrides["http_timeout"] = timeout
        # The caller's config may be shared with other clients
        self.config = dataclasses.replace(config, **overrides) if overrides else config

        if not self.config.api_key:
            raise AuthenticationError(
                "API key is required. Pass it as a parameter or set DEVENTO_API_KEY environment variable"
            )

        if self.config.debug:
            enable_debug_logging()

        self.base_url = self.config.base_url.rstrip("/")
        self.api_key = self.config.api_key
        self.timeout = self.config.http_timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        """Get request headers"""
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "User-Agent": f"devento-python-sdk/{__version__}",
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}{path}"

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Make an API request"""
        if data is not None:
            logger.debug("making request %s %s body=%s", method, path, data)
        else:
            logger.debug("making request %s %s", method, path)

        response = self.session.request(
            method=method,
            url=self._url(path),
            json=data,
            params=params,
            headers=self._headers(),
            timeout=timeout or self.timeout,
        )
        return self._handle_response(response)

    def _stream(
        self,
        method: str,
        path: str,
        data: Optional[Dict] = None,
        read_timeout: Optional[float] = None,
    ) -> requests.Response:
        """
        Open a request whose body is read incrementally as an event stream.

        ``read_timeout`` bounds each wait for more body data; None waits
        indefinitely.
        """
        logger.debug("opening stream %s %s", method, path)
        headers = self._headers()
        headers["Accept"] = "text/event-stream"

        response = self.session.request(
            method=method,
            url=self._url(path),
            json=data,
            headers=headers,
            timeout=(self.timeout, read_timeout),
            stream=True,
        )
        if response.status_code < 200 or response.status_code >= 300:
            try:
                self._handle_response(response)
            finally:
                response.close()
        return response

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        """Handle API response"""
        if 200 <= response.status_code < 300:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                return {"raw": response.text}

        text = response.text
        logger.debug("API error response status=%s body=%s", response.status_code, text)
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise APIError(response.status_code, f"API generic error: {text}", response={"raw": text})

        raise parse_error(response.status_code, body, response.headers)

    # Box methods
    def create_box(self, config: Optional[BoxConfig] = None) -> BoxHandle:
        """Create a new box; it starts out queued"""
        config = config or BoxConfig()
        response = self._request("POST", "/boxes", data=config.to_payload())
        logger.debug("box created: %s", response)
        return BoxHandle(self, Box(id=response.get("id", ""), status=BoxStatus.QUEUED))

    def list_boxes(self) -> List[Box]:
        """List all boxes for the current account"""
        response = self._request("GET", "/boxes")
        return [Box.from_dict(b) for b in response.get("data", [])]

    def get_box(self, box_id: str) -> BoxHandle:
        """Get a handle for an existing box"""
        response = self._request("GET", f"/boxes/{box_id}")
        return BoxHandle(self, Box.from_dict(response.get("data", {})))

    @contextmanager
    def sandbox(
        self,
        config: Optional[BoxConfig] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[BoxHandle]:
        """
        Create a box, wait for it and stop it when the block exits.

        Usage:
            with client.sandbox(BoxConfig(cpu=1)) as box:
                print(box.run("echo hi").stdout)
        """
        box = self.create_box(config)
        logger.debug("created box %s for sandbox block", box.id)
        try:
            box.wait_until_ready(cancel=cancel)
            yield box
        finally:
            try:
                box.stop()
            except (requests.exceptions.RequestException, DeventoError) as e:
                logger.error("failed to stop box %s: %s", box.id, e)

    # Domain methods
    def list_domains(self) -> DomainsResponse:
        response = self._request("GET", "/domains")
        return DomainsResponse.from_dict(response)

    def get_domain(self, domain_id: str) -> DomainResponse:
        response = self._request("GET", f"/domains/{domain_id}")
        return DomainResponse.from_dict(response)

    def create_domain(self, request: Optional[CreateDomainRequest]) -> DomainResponse:
        if request is None:
            raise ValidationError("request", "create domain request is required")
        response = self._request("POST", "/domains", data=request.to_payload())
        return DomainResponse.from_dict(response)

    def update_domain(
        self, domain_id: str, request: Optional[UpdateDomainRequest]
    ) -> DomainResponse:
        """Update a domain; only fields that are set are sent"""
        if request is None:
            raise ValidationError("request", "update domain request is required")
        response = self._request("PATCH", f"/domains/{domain_id}", data=request.to_payload())
        return DomainResponse.from_dict(response)

    def delete_domain(self, domain_id: str) -> None:
        self._request("DELETE", f"/domains/{domain_id}")
