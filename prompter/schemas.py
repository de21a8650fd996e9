"""Pydantic schemas for the recorder's log and project snapshot files."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from .audio.types import parse_iso, to_epoch_ms


class LogEvent(BaseModel):
    """One action-log entry; unknown keys are kept as extras."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    ts: Optional[str] = None
    action: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    index: Optional[int] = None
    user_code: Optional[str] = Field(default=None, alias="userCode")

    _key_order: Tuple[str, ...] = PrivateAttr(default=())

    @model_validator(mode="wrap")
    @classmethod
    def _remember_key_order(cls, data: Any, handler: Any) -> "LogEvent":
        event = handler(data)
        if isinstance(data, dict):
            event._key_order = tuple(data)
        return event

    @property
    def time_ms(self) -> float:
        if not self.ts:
            return float("nan")
        try:
            return to_epoch_ms(parse_iso(self.ts))
        except ValueError:
            return float("nan")

    def to_record(self) -> Dict[str, Any]:
        """Only the keys present in the source entry, in source order and under their source names."""
        record = self.model_dump(by_alias=True, exclude_unset=True)
        fields = type(self).model_fields
        source = [fields[key].alias or key if key in fields else key for key in self._key_order]
        ordered = {key: record[key] for key in source if key in record}
        ordered.update((key, value) for key, value in record.items() if key not in ordered)
        return ordered

    def to_json(self) -> str:
        return json.dumps(self.to_record(), ensure_ascii=False, separators=(",", ":"))


class SentenceRecord(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    text: str
    id: Optional[str] = None


class TakeRecord(BaseModel):
    idx: int = 0
    started_at: datetime
    ended_at: datetime
    audio: str


class SessionRecord(BaseModel):
    id: str
    start: Optional[datetime] = None
    takes: List[TakeRecord] = Field(default_factory=list)


class ProjectManifest(BaseModel):
    project_name: str = ""
    user_code: str = ""
    sentences: List[SentenceRecord] = Field(default_factory=list)
    sessions: List[SessionRecord] = Field(default_factory=list)
    log: str = "log.jsonl"
