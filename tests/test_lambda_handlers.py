from __future__ import annotations

import contextlib
import hashlib
import hmac
import io
import json
import os
import unittest
from typing import Any
from unittest import mock

from botocore.exceptions import ClientError

from app.lambda_handlers import app_secrets, ingress_handler, worker_handler


def _http_event(method: str, body: str = "", query: dict[str, str] | None = None, headers: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "rawPath": "/webhook",
        "requestContext": {"http": {"method": method}},
        "queryStringParameters": query,
        "headers": headers or {},
        "body": body,
        "isBase64Encoded": False,
    }


def _webhook_body(*messages: dict[str, Any]) -> str:
    payload = {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {"messages": list(messages), "statuses": [{"id": "s1", "status": "sent"}]}}]}],
    }
    return json.dumps(payload)


class _Clients:
    def __init__(self) -> None:
        self.sqs = mock.Mock()
        self.dynamodb = mock.Mock()

    def __call__(self, name: str) -> Any:
        return getattr(self, name)


class IngressHandlerTest(unittest.TestCase):
    def setUp(self) -> None:
        self.clients = _Clients()
        patches = [
            mock.patch.object(ingress_handler, "_client", self.clients),
            mock.patch.object(ingress_handler, "SQS_QUEUE_URL", "https://sqs.test/queue.fifo"),
            mock.patch.object(ingress_handler, "EVENT_DEDUPE_TABLE", "innova-bot-event-dedupe"),
            mock.patch.object(ingress_handler, "WHATSAPP_APP_SECRET", ""),
            mock.patch.object(ingress_handler, "WHATSAPP_VERIFY_TOKEN", "innova"),
            mock.patch.object(ingress_handler, "APP_SECRETS_ARN", ""),
            mock.patch.object(ingress_handler, "APP_SECRETS_NAME", ""),
        ]
        for patcher in patches:
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_get_verifies_subscription(self) -> None:
        ok = ingress_handler.lambda_handler(
            _http_event("GET", query={"hub.mode": "subscribe", "hub.verify_token": "innova", "hub.challenge": "42"}),
            None,
        )
        denied = ingress_handler.lambda_handler(
            _http_event("GET", query={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "42"}),
            None,
        )
        self.assertEqual((ok["statusCode"], ok["body"]), (200, "42"))
        self.assertEqual(denied["statusCode"], 403)

    def test_post_enqueues_each_message_grouped_by_sender(self) -> None:
        body = _webhook_body(
            {"id": "wamid.1", "from": "923001112222", "type": "text", "text": {"body": "hi"}},
            {"id": "wamid.2", "from": "447700900000", "type": "text", "text": {"body": "menu"}},
        )

        response = ingress_handler.lambda_handler(_http_event("POST", body), None)

        self.assertEqual(response["statusCode"], 200)
        self.assertEqual(json.loads(response["body"]), {"ok": True, "enqueued": 2, "skipped": 1})
        calls = self.clients.sqs.send_message.call_args_list
        self.assertEqual([c.kwargs["MessageGroupId"] for c in calls], ["923001112222", "447700900000"])
        self.assertEqual(calls[0].kwargs["MessageDeduplicationId"], "wamid.1")
        envelope = json.loads(calls[0].kwargs["MessageBody"])
        self.assertEqual(envelope["message"]["text"]["body"], "hi")

    def test_duplicate_events_are_not_enqueued(self) -> None:
        self.clients.dynamodb.put_item.side_effect = ClientError(
            {"Error": {"Code": "ConditionalCheckFailedException", "Message": "exists"}}, "PutItem"
        )
        body = _webhook_body({"id": "wamid.1", "from": "923001112222", "type": "text", "text": {"body": "hi"}})

        response = ingress_handler.lambda_handler(_http_event("POST", body), None)

        self.assertEqual(json.loads(response["body"])["enqueued"], 0)
        self.clients.sqs.send_message.assert_not_called()

    def test_signature_is_checked_when_secret_configured(self) -> None:
        body = _webhook_body()
        digest = hmac.new(b"secret", body.encode("utf-8"), hashlib.sha256).hexdigest()
        with mock.patch.object(ingress_handler, "WHATSAPP_APP_SECRET", "secret"):
            rejected = ingress_handler.lambda_handler(_http_event("POST", body, headers={"X-Hub-Signature-256": "sha256=bad"}), None)
            accepted = ingress_handler.lambda_handler(
                _http_event("POST", body, headers={"X-Hub-Signature-256": f"sha256={digest}"}),
                None,
            )
        self.assertEqual(rejected["statusCode"], 401)
        self.assertEqual(accepted["statusCode"], 200)

    def test_rejects_unknown_method_and_path(self) -> None:
        self.assertEqual(ingress_handler.lambda_handler(_http_event("PUT"), None)["statusCode"], 405)
        event = _http_event("POST", _webhook_body())
        event["rawPath"] = "/other"
        self.assertEqual(ingress_handler.lambda_handler(event, None)["statusCode"], 404)
        self.assertEqual(ingress_handler.lambda_handler(_http_event("POST", "{"), None)["statusCode"], 400)

    def test_secret_lookup_skipped_without_secret_id(self) -> None:
        with mock.patch.object(ingress_handler, "_client", side_effect=self.clients) as client_factory:
            ingress_handler.lambda_handler(_http_event("POST", _webhook_body()), None)

        self.assertNotIn("secretsmanager", [c.args[0] for c in client_factory.call_args_list])

    def test_secret_values_used_when_secret_id_configured(self) -> None:
        self.clients.secretsmanager = mock.Mock()
        with mock.patch.object(ingress_handler, "APP_SECRETS_ARN", "arn:innova"), mock.patch.object(
            ingress_handler, "load_app_secret_values", return_value={"whatsapp_app_secret": "secret"}
        ) as loader:
            response = ingress_handler.lambda_handler(
                _http_event("POST", _webhook_body(), headers={"X-Hub-Signature-256": "sha256=bad"}), None
            )

        self.assertEqual(response["statusCode"], 401)
        loader.assert_called_with("arn:innova", client=self.clients.secretsmanager)

    def test_malformed_entry_is_rejected_with_log_line(self) -> None:
        stdout = io.StringIO()
        body = json.dumps({"object": "whatsapp_business_account", "entry": {}})
        with contextlib.redirect_stdout(stdout):
            response = ingress_handler.lambda_handler(_http_event("POST", body), None)

        self.assertEqual(response["statusCode"], 400)
        self.assertIn("inbound-event-dropped reason=entry must be list", stdout.getvalue())
        self.clients.sqs.send_message.assert_not_called()


class WorkerHandlerTest(unittest.TestCase):
    def test_failed_records_are_reported_for_retry(self) -> None:
        worker = mock.Mock()
        worker.process_message.side_effect = [True, RuntimeError("boom")]
        event = {
            "Records": [
                {"messageId": "q1", "body": json.dumps({"message": {"id": "wamid.1"}})},
                {"messageId": "q2", "body": json.dumps({"message": {"id": "wamid.2"}})},
                {"messageId": "q3", "body": json.dumps({"event_id": "x"})},
            ]
        }
        with mock.patch.object(worker_handler, "_get_worker", return_value=worker):
            result = worker_handler.lambda_handler(event, None)

        self.assertEqual(result, {"batchItemFailures": [{"itemIdentifier": "q2"}, {"itemIdentifier": "q3"}]})

    def test_init_failure_fails_whole_batch(self) -> None:
        event = {"Records": [{"messageId": "q1", "body": "{}"}, {"messageId": "q2", "body": "{}"}]}
        with mock.patch.object(worker_handler, "_get_worker", side_effect=RuntimeError("no secret")):
            result = worker_handler.lambda_handler(event, None)
        self.assertEqual(len(result["batchItemFailures"]), 2)

    def test_worker_delegates_to_webhook_handler(self) -> None:
        handler = mock.Mock()
        handler.handle_message.return_value = True
        worker = worker_handler.WhatsAppEventWorker({}, handler=handler)

        self.assertTrue(worker.process_message({"id": "wamid.1"}))
        handler.handle_message.assert_called_once_with({"id": "wamid.1"})
        handler.maybe_sweep.assert_called_once()

    def test_env_overrides(self) -> None:
        config: dict[str, Any] = {}
        env = {
            "WHATSAPP_ACCESS_TOKEN": "token",
            "WHATSAPP_PHONE_NUMBER_ID": "123",
            "STORAGE_BACKEND": "dynamodb",
            "DDB_APPLICATIONS_TABLE": "apps",
            "SESSION_TTL_MINUTES": "30",
            "GOOGLE_SHEETS_ENABLED": "true",
            "AWS_LAMBDA_FUNCTION_NAME": "innova-bot-whatsapp-worker",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            worker_handler._apply_env_overrides(config)

        self.assertEqual(config["whatsapp"]["access_token"], "token")
        self.assertEqual(config["whatsapp"]["phone_number_id"], "123")
        self.assertEqual(config["storage"]["backend"], "dynamodb")
        self.assertEqual(config["storage"]["session_backend"], "repository")
        self.assertEqual(config["storage"]["dynamodb"]["tables"]["applications"], "apps")
        self.assertEqual(config["conversation"]["session_ttl_minutes"], 30)
        self.assertTrue(config["storage"]["google_sheets"]["enabled"])

    def test_secret_overrides(self) -> None:
        config: dict[str, Any] = {}
        secrets = {"whatsapp_access_token": "tok", "whatsapp_app_secret": "app", "google_sheets_credentials_json": {"type": "service_account"}}
        with mock.patch.object(worker_handler, "load_app_secret_values", return_value=secrets):
            worker_handler._apply_secret_overrides(config)

        self.assertEqual(config["whatsapp"]["access_token"], "tok")
        self.assertEqual(config["whatsapp"]["app_secret"], "app")
        self.assertEqual(config["storage"]["google_sheets"]["credentials_json"], {"type": "service_account"})



class AppSecretsTest(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch.object(app_secrets, "_cache", {})
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_empty_secret_id_skips_lookup(self) -> None:
        client = mock.Mock()
        self.assertEqual(app_secrets.load_app_secret_values("", client=client), {})
        client.get_secret_value.assert_not_called()

    def test_values_are_cached_per_secret(self) -> None:
        client = mock.Mock()
        client.get_secret_value.return_value = {"SecretString": json.dumps({"whatsapp_access_token": "tok"})}

        first = app_secrets.load_app_secret_values("arn:secret", client=client)
        second = app_secrets.load_app_secret_values("arn:secret", client=client)

        self.assertEqual(first, {"whatsapp_access_token": "tok"})
        self.assertIs(first, second)
        client.get_secret_value.assert_called_once_with(SecretId="arn:secret")

    def test_invalid_json_raises(self) -> None:
        client = mock.Mock()
        client.get_secret_value.return_value = {"SecretString": "{not json"}
        with self.assertRaises(RuntimeError):
            app_secrets.load_app_secret_values("arn:secret", client=client)

    def test_client_error_raises(self) -> None:
        client = mock.Mock()
        client.get_secret_value.side_effect = ClientError({"Error": {"Code": "AccessDeniedException"}}, "GetSecretValue")
        with self.assertRaises(RuntimeError):
            app_secrets.load_app_secret_values("arn:secret", client=client)


if __name__ == "__main__":
    unittest.main()
