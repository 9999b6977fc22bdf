"""Dataclasses shared across audio helpers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class AudioQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def sample_rate(self) -> int:
        return {"low": 22050, "medium": 44100, "high": 48000}[self.value]

    @property
    def bit_depth(self) -> int:
        return 24 if self is AudioQuality.HIGH else 16

    @property
    def subtype(self) -> str:
        return f"PCM_{self.bit_depth}"


class SegmenterState(str, Enum):
    CAPTURING = "capturing"
    PAUSED_BY_INTERRUPTION = "paused-by-interruption"
    STOPPED = "stopped"


@dataclass(slots=True)
class Segment:
    """One finalized slice of a recording session."""

    session_id: str
    index: int
    start_offset: float
    duration: float
    path: str
    sample_rate: int = 44100
    channels: int = 1
    file_size_bytes: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "index": self.index,
            "start_offset": self.start_offset,
            "duration": self.duration,
            "path": self.path,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "file_size_bytes": self.file_size_bytes,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Segment":
        return cls(
            id=str(raw["id"]),
            session_id=str(raw["session_id"]),
            index=int(raw["index"]),
            start_offset=float(raw["start_offset"]),
            duration=float(raw["duration"]),
            path=str(raw["path"]),
            sample_rate=int(raw.get("sample_rate", 44100)),
            channels=int(raw.get("channels", 1)),
            file_size_bytes=int(raw.get("file_size_bytes", 0)),
            created_at=datetime.fromisoformat(raw["created_at"]),
        )
