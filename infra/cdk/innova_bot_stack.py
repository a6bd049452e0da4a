from __future__ import annotations

from pathlib import Path

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_apigatewayv2 as apigwv2,
    aws_apigatewayv2_integrations as apigwv2_integrations,
    aws_dynamodb as dynamodb,
    aws_lambda as lambda_,
    aws_lambda_event_sources as lambda_event_sources,
    aws_secretsmanager as secretsmanager,
    aws_sqs as sqs,
)
from constructs import Construct


class InnovaBotStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs: object) -> None:
        super().__init__(scope, construct_id, **kwargs)

        prefix = str(self.node.try_get_context("prefix") or "innova-bot")
        webhook_path = str(self.node.try_get_context("webhook_path") or "/webhook")
        app_secrets_name = str(self.node.try_get_context("app_secrets_name") or "")
        config_path = str(self.node.try_get_context("config_path") or "config.yaml")
        phone_number_id = str(self.node.try_get_context("whatsapp_phone_number_id") or "")
        sheets_spreadsheet_id = str(self.node.try_get_context("sheets_spreadsheet_id") or "")
        session_ttl_minutes = str(self.node.try_get_context("session_ttl_minutes") or "60")
        app_secret = (
            secretsmanager.Secret.from_secret_name_v2(
                self,
                "AppSecrets",
                app_secrets_name,
            )
            if app_secrets_name
            else None
        )

        dlq = sqs.Queue(
            self,
            "WhatsAppEventsDlq",
            queue_name=f"{prefix}-whatsapp-events-dlq.fifo",
            fifo=True,
            retention_period=Duration.days(14),
        )
        # message groups are keyed by sender, so one conversation is never processed in parallel
        events_queue = sqs.Queue(
            self,
            "WhatsAppEventsQueue",
            queue_name=f"{prefix}-whatsapp-events.fifo",
            fifo=True,
            content_based_deduplication=False,
            visibility_timeout=Duration.seconds(120),
            dead_letter_queue=sqs.DeadLetterQueue(
                max_receive_count=3,
                queue=dlq,
            ),
        )
        dlq.apply_removal_policy(RemovalPolicy.DESTROY)
        events_queue.apply_removal_policy(RemovalPolicy.DESTROY)

        event_table = dynamodb.Table(
            self,
            "EventDedupeTable",
            table_name=f"{prefix}-event-dedupe",
            partition_key=dynamodb.Attribute(name="event_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
            time_to_live_attribute="expires_at_epoch",
        )

        sessions_table = dynamodb.Table(
            self,
            "SessionsTable",
            table_name=f"{prefix}-sessions",
            partition_key=dynamodb.Attribute(name="identity", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
            time_to_live_attribute="expires_at_epoch",
        )

        applications_table = dynamodb.Table(
            self,
            "ApplicationsTable",
            table_name=f"{prefix}-applications",
            partition_key=dynamodb.Attribute(name="application_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            removal_policy=RemovalPolicy.RETAIN,
        )
        applications_table.add_global_secondary_index(
            index_name="kind_submitted_at_index",
            partition_key=dynamodb.Attribute(name="kind", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="submitted_at", type=dynamodb.AttributeType.STRING),
            projection_type=dynamodb.ProjectionType.ALL,
        )

        lambda_asset_path = str(Path(__file__).resolve().parents[2])
        lambda_asset_excludes = [
            ".git/**",
            ".venv/**",
            ".venv*/**",
            "venv/**",
            "__pycache__/**",
            "**/__pycache__/**",
            "*.pyc",
            "data/**",
            "tests/**",
            "infra/**",
            "cdk.out/**",
            "*.md",
        ]
        ingress_fn = lambda_.Function(
            self,
            "WhatsAppIngressFunction",
            function_name=f"{prefix}-whatsapp-ingress",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler="app.lambda_handlers.ingress_handler.lambda_handler",
            code=lambda_.Code.from_asset(lambda_asset_path, exclude=lambda_asset_excludes),
            timeout=Duration.seconds(5),
            memory_size=256,
            environment={
                "SQS_QUEUE_URL": events_queue.queue_url,
                "EVENT_DEDUPE_TABLE": event_table.table_name,
                "EVENT_DEDUPE_TTL_DAYS": "7",
                "WHATSAPP_WEBHOOK_PATH": webhook_path,
                "APP_SECRETS_ARN": app_secret.secret_arn if app_secret else "",
                "APP_SECRETS_NAME": app_secrets_name,
            },
        )

        worker_fn = lambda_.Function(
            self,
            "WhatsAppWorkerFunction",
            function_name=f"{prefix}-whatsapp-worker",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler="app.lambda_handlers.worker_handler.lambda_handler",
            code=lambda_.Code.from_asset(lambda_asset_path, exclude=lambda_asset_excludes),
            timeout=Duration.seconds(60),
            memory_size=512,
            environment={
                "CONFIG_PATH": config_path,
                "STORAGE_BACKEND": "dynamodb",
                "SESSION_BACKEND": "repository",
                "SESSION_TTL_MINUTES": session_ttl_minutes,
                "DDB_TABLE_PREFIX": prefix,
                "DDB_EVENT_TABLE": event_table.table_name,
                "DDB_SESSIONS_TABLE": sessions_table.table_name,
                "DDB_APPLICATIONS_TABLE": applications_table.table_name,
                "WHATSAPP_PHONE_NUMBER_ID": phone_number_id,
                "GOOGLE_SHEETS_ENABLED": "true" if sheets_spreadsheet_id else "false",
                "GOOGLE_SHEETS_SPREADSHEET_ID": sheets_spreadsheet_id,
                "APP_SECRETS_ARN": app_secret.secret_arn if app_secret else "",
                "APP_SECRETS_NAME": app_secrets_name,
            },
        )
        worker_fn.add_event_source(
            lambda_event_sources.SqsEventSource(
                events_queue,
                batch_size=10,
                report_batch_item_failures=True,
            )
        )

        events_queue.grant_send_messages(ingress_fn)
        event_table.grant_write_data(ingress_fn)
        events_queue.grant_consume_messages(worker_fn)
        event_table.grant_read_write_data(worker_fn)
        sessions_table.grant_read_write_data(worker_fn)
        applications_table.grant_read_write_data(worker_fn)
        if app_secret is not None:
            app_secret.grant_read(ingress_fn)
            app_secret.grant_read(worker_fn)

        webhook_api = apigwv2.HttpApi(
            self,
            "WhatsAppWebhookApi",
            api_name=f"{prefix}-whatsapp-webhook",
        )
        webhook_api.add_routes(
            path=webhook_path,
            methods=[apigwv2.HttpMethod.GET, apigwv2.HttpMethod.POST],
            integration=apigwv2_integrations.HttpLambdaIntegration(
                "WhatsAppIngressIntegration",
                ingress_fn,
            ),
        )

        CfnOutput(self, "WhatsAppWebhookUrl", value=f"{webhook_api.api_endpoint}{webhook_path}")
        CfnOutput(self, "WhatsAppEventsQueueUrl", value=events_queue.queue_url)
        CfnOutput(self, "ApplicationsTableName", value=applications_table.table_name)
