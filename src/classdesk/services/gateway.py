import logging
import time
from typing import Any, Dict, Optional

import requests
from requests import RequestException

from classdesk.config.settings import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    pass


class GatewayNetworkError(GatewayError):
    pass


class GatewayStatusError(GatewayError):
    def __init__(self, status_code: int, detail: str = "") -> None:
        super().__init__(f"HTTP {status_code}{': ' + detail if detail else ''}")
        self.status_code = status_code


class GatewayResponseError(GatewayError):
    pass


class GatewayRejectedError(GatewayResponseError):
    def __init__(self, reply: Dict[str, Any]) -> None:
        message = str(reply.get("message") or reply.get("status") or "REJECTED")
        super().__init__(message)
        self.reply = reply


class AuthError(Exception):
    pass


class RemoteGateway:
    """Client for the single JSON endpoint that persists classroom data.

    Pull is ``GET <endpoint>?action=getData&t=<ms>``; every write is a ``POST`` of
    the action object. Failures are classified into network, status and
    response errors so callers can decide what to retry.
    """

    PROBE_TIMEOUT = 3

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not endpoint:
            raise GatewayError("Missing CLASSDESK_ENDPOINT in environment")
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "RemoteGateway":
        return cls(settings.endpoint, timeout=settings.timeout_seconds)

    def fetch_all(self) -> Dict[str, Any]:
        params = {"action": "getData", "t": int(time.time() * 1000)}
        try:
            res = self.session.get(
                self.endpoint,
                params=params,
                headers={"Cache-Control": "no-cache"},
                timeout=self.timeout,
            )
        except RequestException as exc:
            raise GatewayNetworkError(f"getData failed: {exc}") from exc
        return self._decode(res)

    def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        reply = self._post(payload)
        if reply.get("status") != "success":
            raise GatewayRejectedError(reply)
        return reply

    def login(self, username: str, password: str) -> str:
        try:
            reply = self.send({"action": "login", "username": username, "password": password})
        except GatewayError as exc:
            raise AuthError(str(exc) or "LOGIN_FAILED") from exc
        token = str(reply.get("token") or "")
        if not token:
            raise AuthError("MISSING_TOKEN")
        return token

    def probe(self) -> bool:
        try:
            res = self.session.get(self.endpoint, timeout=self.PROBE_TIMEOUT)
        except RequestException:
            return False
        # any HTTP answer means the network path is up
        return res.status_code < 500

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            res = self.session.post(
                self.endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except RequestException as exc:
            raise GatewayNetworkError(f"{payload.get('action')} failed: {exc}") from exc
        return self._decode(res)

    @staticmethod
    def _decode(res: requests.Response) -> Dict[str, Any]:
        if not 200 <= res.status_code < 300:
            raise GatewayStatusError(res.status_code, res.reason or "")
        try:
            data = res.json()
        except ValueError as exc:
            raise GatewayResponseError("Response is not JSON") from exc
        if not isinstance(data, dict):
            raise GatewayResponseError(f"Expected a JSON object, got {type(data).__name__}")
        return data
