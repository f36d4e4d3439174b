import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urljoin

import requests


SMSAPI_URL = "https://api.smsapi.pl/"

# SMSAPI error codes by failure category; anything else is an action error
CLIENT_ERROR_CODES = {101, 102, 103, 105, 110, 1000, 1001}
HOST_ERROR_CODES = {8, 201, 666, 999}

log = logging.getLogger(__name__)


class SmsApiError(Exception):
    """Base class for every failure reported by the SMS gateway call."""

    kind = "api"

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code {self.code})"


class ActionError(SmsApiError):
    """The gateway rejected the send action (bad number, sender, content...)."""

    kind = "action"


class ClientError(SmsApiError):
    """Authorization or account problem."""

    kind = "client"


class HostError(SmsApiError):
    """The gateway host failed."""

    kind = "host"


class ProxyError(SmsApiError):
    """The request could not be delivered to the gateway or its reply was unreadable."""

    kind = "proxy"


def error_for_code(code: int, message: str) -> SmsApiError:
    if code in CLIENT_ERROR_CODES:
        return ClientError(message, code)
    if code in HOST_ERROR_CODES:
        return HostError(message, code)
    return ActionError(message, code)


@dataclass(frozen=True)
class SendResult:
    count: int
    points: float
    message_ids: Tuple[str, ...]


@dataclass
class SmsApiClient:
    token: str
    base_url: str = SMSAPI_URL
    timeout: float = 30.0
    user_agent: str = "smsender (https://github.com/piotrmalek/smsender, 1.0)"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }

    def send_sms(self, text: str, to: str, sender: str) -> SendResult:
        """Send `text` to the comma-separated recipients in `to`. Single attempt.

        Raises a SmsApiError subclass on any failure.
        """
        url = urljoin(self.base_url if self.base_url.endswith("/") else self.base_url + "/", "sms.do")
        data = {
            "to": to,
            "message": text,
            "from": sender,
            "format": "json",
            "encoding": "utf-8",
        }
        try:
            resp = requests.post(url, data=data, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise ProxyError(f"Request to {url} failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        # SMSAPI reports errors as {"error": <code>, "message": "..."}, sometimes with HTTP 200
        if isinstance(payload, dict) and payload.get("error") is not None:
            try:
                code = int(payload["error"])
            except (TypeError, ValueError):
                raise ActionError(str(payload.get("message") or payload["error"])) from None
            raise error_for_code(code, str(payload.get("message") or "SMSAPI error"))

        if resp.status_code >= 500:
            raise HostError(f"SMSAPI host error: HTTP {resp.status_code}")
        if resp.status_code in (401, 403):
            raise ClientError(f"SMSAPI authorization failed: HTTP {resp.status_code}")
        if not (200 <= resp.status_code < 300):
            raise ActionError(f"SMSAPI request rejected: HTTP {resp.status_code}")
        if not isinstance(payload, dict):
            raise ProxyError(f"Unexpected response from {url}: {resp.text[:200]!r}")

        try:
            items = payload.get("list") or []
            result = SendResult(
                count=int(payload.get("count", len(items))),
                points=sum(float(item.get("points", 0) or 0) for item in items),
                message_ids=tuple(str(item.get("id")) for item in items if item.get("id") is not None),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ProxyError(f"Unexpected response from {url}: {resp.text[:200]!r}") from e
        log.info("SMSAPI accepted %d message(s), points=%s", result.count, result.points)
        return result
