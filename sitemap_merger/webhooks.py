"""Site-publish webhook decoding and signature verification."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from .config import WebhookConfig

LOGGER = logging.getLogger(__name__)

SITE_PUBLISH_TRIGGER = "site_publish"


class WebhookPayloadError(ValueError):
    """Raised when a webhook body is not JSON or not a recognised event shape."""


@dataclass(frozen=True, slots=True)
class Publisher:
    id: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SitePublishEvent:
    site_id: str
    published_on: Optional[str] = None
    publish_time: Optional[int] = None
    domains: tuple[str, ...] = ()
    published_by: Publisher = field(default_factory=Publisher)

    trigger_type = SITE_PUBLISH_TRIGGER

    @property
    def published_at(self) -> Optional[str]:
        if self.published_on:
            return self.published_on
        if self.publish_time is not None:
            return str(self.publish_time)
        return None


# Union of decoded trigger types.
WebhookEvent = Union[SitePublishEvent]


def _optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise WebhookPayloadError(f"Field {key!r} must be a string")
    return value


def _decode_publisher(value: Any) -> Publisher:
    if value is None:
        return Publisher()
    if not isinstance(value, Mapping):
        raise WebhookPayloadError("Field 'publishedBy' must be an object")
    return Publisher(
        id=_optional_str(value, "id"),
        name=_optional_str(value, "name"),
        display_name=_optional_str(value, "displayName"),
        email=_optional_str(value, "email"),
    )


def _decode_site_publish(payload: Any) -> SitePublishEvent:
    if not isinstance(payload, Mapping):
        raise WebhookPayloadError("site_publish event requires a 'payload' object")
    site_id = payload.get("siteId")
    if not isinstance(site_id, str) or not site_id:
        raise WebhookPayloadError("site_publish event requires a string 'siteId'")

    publish_time = payload.get("publishTime")
    if publish_time is not None and (isinstance(publish_time, bool) or not isinstance(publish_time, int)):
        raise WebhookPayloadError("Field 'publishTime' must be an integer")

    domains = payload.get("domains") or []
    if not isinstance(domains, list) or not all(isinstance(domain, str) for domain in domains):
        raise WebhookPayloadError("Field 'domains' must be a list of strings")

    return SitePublishEvent(
        site_id=site_id,
        published_on=_optional_str(payload, "publishedOn"),
        publish_time=publish_time,
        domains=tuple(domains),
        published_by=_decode_publisher(payload.get("publishedBy")),
    )


def decode_webhook_payload(body: str | bytes) -> WebhookEvent:
    """Decode a webhook body into a typed event, rejecting unknown shapes."""

    try:
        data = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise WebhookPayloadError(f"Invalid JSON in webhook payload: {exc}") from exc
    if not isinstance(data, Mapping):
        raise WebhookPayloadError("Webhook payload must be a JSON object")

    trigger = data.get("triggerType")
    if trigger == SITE_PUBLISH_TRIGGER:
        return _decode_site_publish(data.get("payload"))
    raise WebhookPayloadError(f"Unexpected webhook trigger type: {trigger!r}")


def compute_signature(body: str | bytes, secret: str) -> str:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: str | bytes, signature: Optional[str], secret: str) -> bool:
    """Check a hex HMAC-SHA256 signature over the raw request body."""

    if not signature:
        return False
    expected = compute_signature(body, secret)
    try:
        return hmac.compare_digest(expected, signature.strip().lower())
    except TypeError:
        LOGGER.warning("Webhook signature contains non-ASCII characters")
        return False


def select_webhook_secret(config: WebhookConfig) -> Optional[str]:
    for secret in config.secrets:
        if secret:
            return secret
    return None
