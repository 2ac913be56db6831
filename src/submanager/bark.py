"""Bark push notification client.

Bark API: GET {server}/{device_key}/{title}/{body}?sound=...&icon=...
responds with JSON ``{"code": 200, "message": "success", ...}``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote, urlparse

import httpx

logger = logging.getLogger("submanager.bark")

_DEVICE_KEY_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


@dataclass
class BarkOptions:
    sound: str = ""
    icon: str = ""
    group: str = ""
    url: str = ""                 # opened when the notification is tapped
    automatically_copy: str = ""
    copy: str = ""

    def to_params(self) -> dict[str, str]:
        params = {
            "sound": self.sound,
            "icon": self.icon,
            "group": self.group,
            "url": self.url,
            "automaticallyCopy": self.automatically_copy,
            "copy": self.copy,
        }
        return {k: v for k, v in params.items() if v}


class Notifier(Protocol):
    def __call__(
        self,
        server_url: str,
        device_key: str,
        title: str,
        body: str,
        options: BarkOptions | None = None,
    ) -> bool: ...


def build_push_url(server_url: str, device_key: str, title: str, body: str) -> str:
    base = server_url.rstrip("/")
    return f"{base}/{device_key}/{quote(title, safe='')}/{quote(body, safe='')}"


def send_bark_notification(
    server_url: str,
    device_key: str,
    title: str,
    body: str,
    options: BarkOptions | None = None,
    timeout: float = 10.0,
) -> bool:
    """Send a push via Bark. Returns True only when Bark accepted it."""
    if not server_url or not device_key:
        logger.error("Bark server URL and device key are required")
        return False

    url = build_push_url(server_url, device_key, title, body)
    params = options.to_params() if options else {}

    try:
        response = httpx.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        result = response.json()
    except Exception as e:
        logger.error("Bark push failed (%s): %s", urlparse(server_url).netloc, e)
        return False

    if isinstance(result, dict) and result.get("code") == 200:
        logger.debug("Bark push accepted")
        return True

    message = result.get("message") if isinstance(result, dict) else result
    logger.error("Bark push rejected: %s", message)
    return False


def send_test_push(
    server_url: str, device_key: str, title: str = "Test Notification",
    group: str = "Subscription Manager", timeout: float = 10.0,
) -> bool:
    return send_bark_notification(
        server_url,
        device_key,
        title,
        "This is a test push from Subscription Manager",
        BarkOptions(sound="bell", group=group),
        timeout=timeout,
    )


def validate_bark_config(server_url: str, device_key: str) -> str | None:
    """Return an error message for an unusable Bark config, None if valid."""
    if not server_url:
        return "Server URL is required"
    if not device_key:
        return "Device Key is required"

    parsed = urlparse(server_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return "Invalid Server URL format"

    if not _DEVICE_KEY_RE.match(device_key):
        return "Device Key should only contain letters, numbers, - and _"

    return None
