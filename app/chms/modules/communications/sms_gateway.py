"""
Outbound SMS through a pluggable HTTP provider (SMS_PROVIDER = hubtel | textme | generic).
"""
from __future__ import annotations

import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# (url, method, body, headers, timeout) -> (status code, response text); 0 means no response.
Transport = Callable[[str, str, bytes, dict[str, str], int], tuple[int, str]]


def http_request(url: str, method: str, body: bytes, headers: dict[str, str], timeout: int) -> tuple[int, str]:
    req = urllib.request.Request(url, data=body if method != "GET" else None, method=method)
    for k, v in headers.items():
        req.add_header(k, v)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read().decode("utf-8", errors="ignore")
    except urllib.error.HTTPError as e:
        try:
            text = e.read().decode("utf-8", errors="ignore")
        except Exception:
            text = ""
        return e.code, text
    except (urllib.error.URLError, OSError) as e:
        return 0, str(e)


def normalize_phone(phone: str) -> str:
    """Digits only; local Ghana numbers (0XXXXXXXXX) become 233XXXXXXXXX."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 10 and digits.startswith("0"):
        digits = "233" + digits[1:]
    return digits


@dataclass
class SmsProvider:
    transport: Transport = field(default=http_request, repr=False)
    last_error: str | None = field(default=None, init=False)

    name = "base"

    def send(self, to: str, message: str) -> bool:
        raise NotImplementedError


@dataclass
class HubtelProvider(SmsProvider):
    sender: str = "AliveChMS"
    client_id: str = ""
    client_secret: str = ""
    url: str = "https://smsc.hubtel.com/v1/messages/send"
    timeout_seconds: int = 15

    name = "hubtel"

    def send(self, to: str, message: str) -> bool:
        to = normalize_phone(to)
        if len(to) != 12 or not to.startswith("233"):
            self.last_error = f"Invalid Ghana phone number: {to}"
            return False
        body = urllib.parse.urlencode(
            {
                "from": self.sender,
                "to": to,
                "content": message,
                "clientid": self.client_id,
                "clientsecret": self.client_secret,
            }
        ).encode("utf-8")
        code, text = self.transport(
            self.url, "POST", body, {"Content-Type": "application/x-www-form-urlencoded"}, self.timeout_seconds
        )
        if 200 <= code < 300:
            return True
        self.last_error = f"Hubtel failed | Code: {code} | Response: {text[:200]}"
        return False


@dataclass
class TextMeProvider(SmsProvider):
    sender: str = "AliveChMS"
    api_key: str = ""
    url: str = "https://api.textme.com.gh/sms/send"
    timeout_seconds: int = 15

    name = "textme"

    def send(self, to: str, message: str) -> bool:
        body = urllib.parse.urlencode(
            {
                "to": normalize_phone(to),
                "message": message,
                "sender_id": self.sender,
                "api_key": self.api_key,
            }
        ).encode("utf-8")
        code, text = self.transport(
            self.url, "POST", body, {"Content-Type": "application/x-www-form-urlencoded"}, self.timeout_seconds
        )
        if code == 200:
            return True
        self.last_error = f"TextMe failed | Code: {code} | Response: {text[:200]}"
        return False


def parse_header_lines(raw: str) -> dict[str, str]:
    headers: dict[str, str] = {}
    for line in (raw or "").splitlines():
        if ":" in line and line.strip():
            key, val = line.split(":", 1)
            headers[key.strip()] = val.strip()
    return headers


def _fill(value: Any, replacements: dict[str, str]) -> Any:
    if isinstance(value, str):
        for k, v in replacements.items():
            value = value.replace(k, v)
        return value
    if isinstance(value, dict):
        return {k: _fill(v, replacements) for k, v in value.items()}
    if isinstance(value, list):
        return [_fill(v, replacements) for v in value]
    return value


@dataclass
class GenericHttpProvider(SmsProvider):
    url: str = ""
    method: str = "POST"
    headers: str = ""
    body_template: str = ""
    sender: str = "AliveChMS"
    timeout_seconds: int = 20

    name = "generic"

    def render_body(self, to: str, message: str) -> bytes:
        """
        Fill {to}, {message} and {sender}. A JSON template is filled value by value so
        message text cannot break the document.
        """
        replacements = {"{to}": to, "{message}": message, "{sender}": self.sender}
        try:
            template = json.loads(self.body_template)
        except ValueError:
            return _fill(self.body_template, replacements).encode("utf-8")
        return json.dumps(_fill(template, replacements)).encode("utf-8")

    def send(self, to: str, message: str) -> bool:
        if not self.url:
            self.last_error = "GENERIC_SMS_URL not configured"
            return False
        code, text = self.transport(
            self.url,
            self.method or "POST",
            self.render_body(to, message),
            parse_header_lines(self.headers),
            self.timeout_seconds,
        )
        if 200 <= code < 300:
            return True
        self.last_error = f"Generic SMS failed | Code: {code} | Response: {text[:200]}"
        return False


@dataclass
class SmsGateway:
    provider: SmsProvider

    def send(self, phone: str, message: str) -> bool:
        ok = self.provider.send(phone, message)
        if not ok:
            logger.error("SMS delivery failed | Provider: %s | Error: %s", self.provider.name, self.provider.last_error)
        return ok


def sms_gateway_from_config(config: dict, transport: Transport = http_request) -> SmsGateway:
    name = (config.get("SMS_PROVIDER") or "hubtel").strip().lower()
    provider: SmsProvider
    if name == "textme":
        provider = TextMeProvider(
            transport=transport,
            sender=config.get("TEXTME_SENDER") or "AliveChMS",
            api_key=config.get("TEXTME_API_KEY") or "",
        )
    elif name == "generic":
        provider = GenericHttpProvider(
            transport=transport,
            url=config.get("GENERIC_SMS_URL") or "",
            method=(config.get("GENERIC_SMS_METHOD") or "POST").upper(),
            headers=config.get("GENERIC_SMS_HEADERS") or "",
            body_template=config.get("GENERIC_SMS_BODY") or "",
            sender=config.get("SMS_SENDER_ID") or "AliveChMS",
        )
    else:
        provider = HubtelProvider(
            transport=transport,
            sender=config.get("HUBTEL_SENDER") or "AliveChMS",
            client_id=config.get("HUBTEL_CLIENT_ID") or "",
            client_secret=config.get("HUBTEL_CLIENT_SECRET") or "",
        )
    return SmsGateway(provider=provider)
