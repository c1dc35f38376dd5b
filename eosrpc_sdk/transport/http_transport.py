"""
HTTP transport to a nodeos chain API, built on requests.
"""
import json
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..envelope import ResponseEnvelope
from ..exceptions import TransportError
from .transport import NodeTransport

logger = logging.getLogger(__name__)


class HttpTransport(NodeTransport):
    """
    Sends chain API calls over a pooled requests.Session.

    Non-2xx responses become failed envelopes carrying the node's error body
    as ``raw``; connection problems become failed envelopes describing the
    exception.
    """

    def __init__(self):
        self.node_url: Optional[str] = None
        self.session: Optional[requests.Session] = None
        self.verify_ssl = True
        self.timeout: float = 30

    def is_available(self) -> bool:
        return True

    def initialize(
        self,
        node_url: str,
        verify_ssl: bool = True,
        timeout: float = 30,
        retry_count: int = 0
    ) -> None:
        self.node_url = node_url.rstrip('/')
        self.verify_ssl = verify_ssl
        self.timeout = timeout

        session = requests.Session()
        # Only connection failures are retried; a request that reached the
        # node is never resent.
        retries = Retry(
            total=retry_count,
            connect=retry_count,
            read=0,
            status=0,
            other=0,
            backoff_factor=0.5,
            raise_on_status=False,
        )
        session.mount("http://", HTTPAdapter(max_retries=retries))
        session.mount("https://", HTTPAdapter(max_retries=retries))
        session.headers.update({"Content-Type": "application/json"})
        self.session = session
        logger.debug(f"Initialized HTTP transport for {self.node_url}")

    def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> ResponseEnvelope:
        if self.session is None or self.node_url is None:
            raise TransportError("HTTP transport not initialized", path=path)

        url = f"{self.node_url}{path}"
        try:
            response = self.session.post(
                url,
                data=json.dumps(body) if body is not None else None,
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.RequestException as e:
            logger.error(f"Request to {path} failed: {e}")
            return ResponseEnvelope.failure(
                raw=json.dumps({"error": type(e).__name__, "message": str(e), "path": path})
            )

        text = response.text
        if 200 <= response.status_code < 300:
            logger.debug(f"{path} -> {response.status_code}")
            return ResponseEnvelope(
                success=True, payload=text, raw=text, status_code=response.status_code
            )

        logger.warning(f"{path} returned HTTP {response.status_code}")
        return ResponseEnvelope.failure(raw=text, status_code=response.status_code)

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
