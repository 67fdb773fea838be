"""Component tests for the provider webhook endpoints."""

import json

from django.test import override_settings

from notifications.enums import NotificationLogStatus
from notifications.services.webhook_service import compute_signature
from tests.base import BaseComponentTest
from tests.factories import dispatch_request


class EmailWebhookEndpointTestCase(BaseComponentTest):
    """Test cases for POST /api/v1/webhooks/..."""

    def _sent_log(self):
        log_id = self.container.dispatch_service.dispatch(
            dispatch_request(recipients=["ada@example.com"])
        ).log_ids[0]
        self.deliver_queued()
        return self.repository.find_by_id(log_id)

    def _post(self, path, payload, **headers):
        return self.client.post(
            path, json.dumps(payload), content_type="application/json", **headers
        )

    def test_bounce_marks_failed(self):
        """Test a bounce for a delivered message fails the log."""
        log = self._sent_log()

        response = self._post(
            "/api/v1/webhooks/email-status",
            {"event": "bounce", "messageId": log.metadata["message_id"]},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["processed"], 1)
        self.assertEqual(
            self.repository.find_by_id(log.id).status, NotificationLogStatus.FAILED
        )

    def test_sendgrid_open_event(self):
        """Test SendGrid batches are parsed by provider path."""
        log = self._sent_log()

        response = self._post(
            "/api/v1/webhooks/sendgrid",
            [{"event": "open", "sg_message_id": log.metadata["message_id"]}],
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(self.repository.find_by_id(log.id).metadata["opened"])

    def test_unmatched_event_is_acknowledged(self):
        """Test events for unknown messages still return 200."""
        response = self._post(
            "/api/v1/webhooks/email-status", {"event": "open", "messageId": "<nope>"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["message"],
            "Webhook received, but no matching notification found",
        )

    def test_malformed_body_is_acknowledged(self):
        """Test unparseable bodies are acknowledged without success."""
        response = self.client.post(
            "/api/v1/webhooks/email-status", "not json", content_type="application/json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["success"])


@override_settings(EMAIL_WEBHOOK_SECRET="s3cret")
class SignedWebhookEndpointTestCase(BaseComponentTest):
    """Test cases for webhook signature verification."""

    def test_valid_signature_accepted(self):
        """Test a correctly signed body is processed."""
        body = json.dumps({"event": "open", "messageId": "<nope>"})

        response = self.client.post(
            "/api/v1/webhooks/email-status",
            body,
            content_type="application/json",
            HTTP_X_WEBHOOK_SIGNATURE="sha256=" + compute_signature("s3cret", body.encode()),
        )

        self.assertEqual(response.status_code, 200)

    def test_invalid_signature_returns_401(self):
        """Test a bad signature is rejected."""
        response = self.client.post(
            "/api/v1/webhooks/email-status",
            json.dumps({"event": "open"}),
            content_type="application/json",
            HTTP_X_WEBHOOK_SIGNATURE="sha256=deadbeef",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["status"], 401)
