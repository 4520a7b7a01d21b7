import json
import unittest

from sitemap_merger.config import WebhookConfig
from sitemap_merger.webhooks import (
    SitePublishEvent,
    WebhookPayloadError,
    compute_signature,
    decode_webhook_payload,
    select_webhook_secret,
    verify_signature,
)


def _publish_body(**payload_overrides) -> bytes:
    payload = {
        "domains": ["www.example.com"],
        "siteId": "site-123",
        "publishedOn": "2024-06-01T12:00:00Z",
        "publishedBy": {"displayName": "Editor", "email": "editor@example.com"},
    }
    payload.update(payload_overrides)
    return json.dumps({"triggerType": "site_publish", "payload": payload}).encode("utf-8")


class DecodeWebhookPayloadTestCase(unittest.TestCase):
    def test_decodes_site_publish(self) -> None:
        event = decode_webhook_payload(_publish_body(publishTime=1717243200))

        self.assertIsInstance(event, SitePublishEvent)
        self.assertEqual(event.site_id, "site-123")
        self.assertEqual(event.domains, ("www.example.com",))
        self.assertEqual(event.publish_time, 1717243200)
        self.assertEqual(event.published_by.display_name, "Editor")
        self.assertEqual(event.published_at, "2024-06-01T12:00:00Z")

    def test_published_at_falls_back_to_publish_time(self) -> None:
        event = decode_webhook_payload(_publish_body(publishedOn=None, publishTime=42))
        self.assertEqual(event.published_at, "42")

    def test_rejects_malformed_bodies(self) -> None:
        bodies = [
            b"not json",
            b"[]",
            json.dumps({"triggerType": "form_submission", "payload": {}}).encode(),
            json.dumps({"triggerType": "site_publish"}).encode(),
            _publish_body(siteId=""),
            _publish_body(publishTime="yesterday"),
            _publish_body(publishTime=True),
            _publish_body(domains="www.example.com"),
            _publish_body(publishedBy="someone"),
        ]
        for body in bodies:
            with self.subTest(body=body), self.assertRaises(WebhookPayloadError):
                decode_webhook_payload(body)


class SignatureTestCase(unittest.TestCase):
    def test_verifies_hmac_signature(self) -> None:
        body = _publish_body()
        signature = compute_signature(body, "secret")

        self.assertTrue(verify_signature(body, signature, "secret"))
        self.assertTrue(verify_signature(body, f" {signature.upper()} ", "secret"))
        self.assertFalse(verify_signature(body, signature, "other"))
        self.assertFalse(verify_signature(body + b" ", signature, "secret"))

    def test_missing_or_non_ascii_signature(self) -> None:
        body = _publish_body()
        self.assertFalse(verify_signature(body, None, "secret"))
        self.assertFalse(verify_signature(body, "", "secret"))
        with self.assertLogs("sitemap_merger.webhooks", level="WARNING"):
            self.assertFalse(verify_signature(body, "é" * 64, "secret"))

    def test_select_webhook_secret(self) -> None:
        self.assertIsNone(select_webhook_secret(WebhookConfig()))
        self.assertEqual(select_webhook_secret(WebhookConfig(secrets=("", "primary", "backup"))), "primary")


if __name__ == "__main__":
    unittest.main()
