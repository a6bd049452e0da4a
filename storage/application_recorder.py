from __future__ import annotations

from typing import Sequence

from core.models import ApplicationRecord
from storage.repository_interface import ApplicationRecorderProtocol


class ApplicationRecordError(RuntimeError):
    pass


class MirroredApplicationRecorder:
    """Writes to the primary store, then copies the record to best-effort mirrors."""

    def __init__(
        self,
        primary: ApplicationRecorderProtocol,
        mirrors: Sequence[ApplicationRecorderProtocol] = (),
    ) -> None:
        self.primary = primary
        self.mirrors = list(mirrors)

    def record(self, record: ApplicationRecord) -> str:
        record_id = self.primary.record(record)
        for mirror in self.mirrors:
            try:
                mirror.record(record)
            except Exception as exc:  # noqa: BLE001
                print(f"application-mirror-failed id={record.id} mirror={type(mirror).__name__} error={exc}")
        return record_id
