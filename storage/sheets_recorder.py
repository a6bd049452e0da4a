from __future__ import annotations

from typing import Any

from conversation.forms import FORMS
from core.enums import RecordKind
from core.models import ApplicationRecord
from storage.application_recorder import ApplicationRecordError

SHEETS_SCOPES = ("https://www.googleapis.com/auth/spreadsheets",)

DEFAULT_TABS = {
    RecordKind.STUDY_ABROAD.value: "StudyApplications",
    RecordKind.ENROLLMENT.value: "Enrollments",
    RecordKind.CONSULTATION.value: "Consultations",
}


def quote_tab_name(title: str) -> str:
    escaped = str(title or "Sheet1").replace("'", "''")
    return f"'{escaped}'"


def row_for_record(record: ApplicationRecord) -> list[str]:
    schema = FORMS[record.kind]
    columns = [f.name for f in schema.fields] + list(schema.context_fields)
    return [record.id, *(record.fields.get(name, "") for name in columns), record.submitted_at]


class GoogleSheetsRecorder:
    def __init__(
        self,
        spreadsheet_id: str,
        credentials_path: str | None = None,
        tabs: dict[str, str] | None = None,
        service: Any | None = None,
    ) -> None:
        self.spreadsheet_id = (spreadsheet_id or "").strip()
        if not self.spreadsheet_id:
            raise ApplicationRecordError("google sheets recorder requires spreadsheet_id.")
        self.credentials_path = (credentials_path or "").strip()
        self.tabs = dict(DEFAULT_TABS)
        self.tabs.update({str(k): str(v) for k, v in (tabs or {}).items() if v})
        self._service = service
        self._known_tabs: set[str] = set()

    def _ensure_service(self) -> Any:
        if self._service is not None:
            return self._service
        try:
            from google.oauth2 import service_account  # type: ignore
            from googleapiclient.discovery import build  # type: ignore
        except Exception as exc:
            raise ApplicationRecordError(
                "google sheets recorder requires `google-api-python-client` and `google-auth` packages."
            ) from exc

        if self.credentials_path:
            credentials = service_account.Credentials.from_service_account_file(
                self.credentials_path,
                scopes=list(SHEETS_SCOPES),
            )
        else:
            import google.auth  # type: ignore

            credentials, _ = google.auth.default(scopes=list(SHEETS_SCOPES))
        self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._service

    def ensure_tab(self, title: str) -> bool:
        if title in self._known_tabs:
            return False
        spreadsheets = self._ensure_service().spreadsheets()
        meta = spreadsheets.get(spreadsheetId=self.spreadsheet_id, fields="sheets.properties.title").execute()
        existing = {
            str(sheet.get("properties", {}).get("title", ""))
            for sheet in meta.get("sheets", [])
        }
        created = False
        if title not in existing:
            spreadsheets.batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
            ).execute()
            created = True
        self._known_tabs.add(title)
        return created

    def record(self, record: ApplicationRecord) -> str:
        tab = self.tabs.get(record.kind.value, record.kind.value)
        try:
            self.ensure_tab(tab)
            self._ensure_service().spreadsheets().values().append(
                spreadsheetId=self.spreadsheet_id,
                range=f"{quote_tab_name(tab)}!A:Z",
                valueInputOption="RAW",
                body={"values": [row_for_record(record)]},
            ).execute()
        except ApplicationRecordError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ApplicationRecordError(f"sheets append failed for {record.id}: {exc}") from exc
        return record.id
