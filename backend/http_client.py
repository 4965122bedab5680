from dataclasses import dataclass
from typing import Any

import requests

from errors import TransportError


@dataclass
class HttpResponse:
    status_code: int
    payload: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpTransport:
    """GET / JSON POST with a timeout on every call.

    Credentials are passed per call by the caller; the transport stores none.
    """

    def __init__(self, timeout: float = 15.0, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def get(self, url: str, params: dict | None = None, headers: dict | None = None) -> HttpResponse:
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e.__class__.__name__}") from e
        return self._wrap(response)

    def post(self, url: str, json_body: Any = None, headers: dict | None = None) -> HttpResponse:
        try:
            response = self.session.post(url, json=json_body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"POST {url} failed: {e.__class__.__name__}") from e
        return self._wrap(response)

    @staticmethod
    def _wrap(response: requests.Response) -> HttpResponse:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=response.status_code, payload=payload)
