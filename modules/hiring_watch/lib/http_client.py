from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)


class HttpClient:
    """
    Shared HTTP session with bounded timeouts and connection-level retries.

    Status-based retries are deliberately limited to 5xx gateway errors on
    idempotent verbs: 401/403 and 429 carry meaning for callers and must reach
    them untouched.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "hiring-watch/0.1",
        *,
        retries: int = 2,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=retries,
            connect=retries,
            read=0,
            backoff_factor=0.3,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=8)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    # ---- convenience ----
    def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """
        POST a JSON body and return the raw response (no raise_for_status):
        callers classify status codes themselves.
        """
        return self.session.post(
            url,
            json=dict(payload),
            headers=dict(headers or {}),
            timeout=timeout or self.timeout,
            **kwargs,
        )

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)
