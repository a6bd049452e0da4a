from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from core.enums import RecordKind, Step
from core.models import ApplicationRecord, Session
from storage.repository_interface import BotRepositoryProtocol


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DynamoBotRepository(BotRepositoryProtocol):
    APPLICATION_KIND_INDEX = "kind_submitted_at_index"

    def __init__(
        self,
        *,
        region_name: str | None = None,
        table_prefix: str = "innova-bot",
        event_table_name: str | None = None,
        sessions_table_name: str | None = None,
        applications_table_name: str | None = None,
        event_ttl_days: int = 7,
        session_ttl_minutes: int = 60,
        dynamodb_resource: Any | None = None,
    ) -> None:
        normalized_prefix = (table_prefix or "innova-bot").strip()
        self.event_ttl_days = max(1, int(event_ttl_days))
        self.session_ttl_minutes = max(1, int(session_ttl_minutes))
        self._ddb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._event_table = self._ddb.Table(event_table_name or f"{normalized_prefix}-event-dedupe")
        self._sessions_table = self._ddb.Table(sessions_table_name or f"{normalized_prefix}-sessions")
        self._applications_table = self._ddb.Table(applications_table_name or f"{normalized_prefix}-applications")

    def mark_event_processed(self, event_id: str) -> bool:
        key = (event_id or "").strip()
        if not key:
            return False
        now = _utc_now()
        expires = int((now + timedelta(days=self.event_ttl_days)).timestamp())
        try:
            self._event_table.put_item(
                Item={
                    "event_id": key,
                    "received_at": now.isoformat(),
                    "expires_at_epoch": expires,
                },
                ConditionExpression="attribute_not_exists(event_id)",
            )
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code == "ConditionalCheckFailedException":
                return False
            raise

    def load_session(self, identity: str) -> Session | None:
        row = self._sessions_table.get_item(Key={"identity": identity}).get("Item")
        if not row:
            return None
        raw_data = _load_json(row.get("data_json"))
        return Session(
            identity=str(row["identity"]),
            step=Step.parse(row.get("step")),
            data=raw_data if isinstance(raw_data, dict) else {},
            last_activity=_parse_datetime(row.get("last_activity")),
            created_at=_parse_datetime(row.get("created_at")),
        )

    def upsert_session(self, session: Session) -> None:
        expires = session.last_activity + timedelta(minutes=self.session_ttl_minutes)
        self._sessions_table.put_item(
            Item={
                "identity": session.identity,
                "step": session.step.value,
                "data_json": json.dumps(session.data, ensure_ascii=False),
                "last_activity": session.last_activity.isoformat(),
                "created_at": session.created_at.isoformat(),
                "expires_at_epoch": int(expires.timestamp()),
            }
        )

    def delete_session(self, identity: str) -> None:
        self._sessions_table.delete_item(Key={"identity": identity})

    def delete_sessions_inactive_since(self, cutoff: datetime) -> int:
        kwargs: dict[str, Any] = {
            "FilterExpression": Attr("last_activity").lt(cutoff.isoformat()),
            "ProjectionExpression": "#identity",
            "ExpressionAttributeNames": {"#identity": "identity"},
        }
        identities: list[str] = []
        while True:
            response = self._sessions_table.scan(**kwargs)
            identities.extend(str(item["identity"]) for item in response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        if identities:
            with self._sessions_table.batch_writer() as batch:
                for identity in identities:
                    batch.delete_item(Key={"identity": identity})
        return len(identities)

    def save_application(self, record: ApplicationRecord) -> str:
        self._applications_table.put_item(
            Item={
                "application_id": record.id,
                "kind": record.kind.value,
                "identity": record.identity,
                "fields_json": json.dumps(record.fields, ensure_ascii=False),
                "submitted_at": record.submitted_at,
            },
            ConditionExpression="attribute_not_exists(application_id)",
        )
        return record.id

    def record(self, record: ApplicationRecord) -> str:
        return self.save_application(record)

    def list_applications(self, kind: RecordKind | None = None) -> list[ApplicationRecord]:
        if kind is None:
            items = self._scan_applications()
            items.sort(key=lambda item: (str(item.get("submitted_at", "")), str(item.get("application_id", ""))), reverse=True)
        else:
            items = self._query_applications_by_kind(RecordKind(kind))
        return [_record_from_item(item) for item in items]

    def _query_applications_by_kind(self, kind: RecordKind) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "IndexName": self.APPLICATION_KIND_INDEX,
            "KeyConditionExpression": Key("kind").eq(kind.value),
            "ScanIndexForward": False,
        }
        items: list[dict[str, Any]] = []
        while True:
            response = self._applications_table.query(**kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        return items

    def _scan_applications(self) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        items: list[dict[str, Any]] = []
        while True:
            response = self._applications_table.scan(**kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        return items


def _record_from_item(item: dict[str, Any]) -> ApplicationRecord:
    raw_fields = _load_json(item.get("fields_json"))
    fields = raw_fields if isinstance(raw_fields, dict) else {}
    return ApplicationRecord(
        id=str(item["application_id"]),
        kind=RecordKind(str(item["kind"])),
        identity=str(item.get("identity", "")),
        fields={str(k): "" if v is None else str(v) for k, v in fields.items()},
        submitted_at=str(item.get("submitted_at", "")),
    )


def _load_json(text: str | None) -> Any:
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return {}


def _parse_datetime(value: Any) -> datetime:
    try:
        parsed = datetime.fromisoformat(str(value))
    except (TypeError, ValueError):
        return _utc_now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
