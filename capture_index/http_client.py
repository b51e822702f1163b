from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

import requests


@dataclass(frozen=True)
class HttpConfig:
    user_agent: str = "capture-index/0.1"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0


class HttpClient:
    """Thin requests wrapper: fixed headers, bounded timeouts, no retries.

    Sessions are per thread, so concurrent callers never share one.
    """

    def __init__(self, cfg: HttpConfig | None = None):
        self.cfg = cfg or HttpConfig()
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        sess = getattr(self._local, "session", None)
        if sess is None:
            sess = requests.Session()
            sess.headers.update({"User-Agent": self.cfg.user_agent})
            self._local.session = sess
        return sess

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        timeout = kwargs.pop("timeout", (self.cfg.connect_timeout, self.cfg.read_timeout))
        resp = self.session.request(method, url, timeout=timeout, **kwargs)
        resp.raise_for_status()
        return resp

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)
