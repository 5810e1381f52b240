"""Chat-side models: conversation messages and per-turn retrieval context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from schemalens.db.models import SchemaChunk

Role = Literal["user", "assistant"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ChatMessage:
    role: Role
    content: str
    timestamp: str = field(default_factory=_now)

    def to_api(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        role = data.get("role")
        if role not in ("user", "assistant"):
            raise ValueError(f"Unknown chat role: {role!r}")
        return cls(
            role=role,
            content=str(data.get("content", "")),
            timestamp=str(data.get("timestamp") or _now()),
        )


@dataclass
class RetrievalContext:
    """What one chat turn retrieved and fed to the model. Never persisted."""

    chunks: list[SchemaChunk] = field(default_factory=list)
    by_type: dict[str, int] = field(default_factory=dict)
    object_names: list[str] = field(default_factory=list)
    query: str = ""
    broad: bool = False
    search_ms: float = 0.0
    context_tokens: int = 0
    total_elapsed_ms: float = 0.0

    @classmethod
    def from_chunks(cls, chunks: list[SchemaChunk], **kwargs: Any) -> RetrievalContext:
        by_type: dict[str, int] = {}
        for chunk in chunks:
            by_type[chunk.object_type.value] = by_type.get(chunk.object_type.value, 0) + 1
        return cls(
            chunks=list(chunks),
            by_type=by_type,
            object_names=[c.qualified_name for c in chunks],
            **kwargs,
        )

    @property
    def chunks_used(self) -> int:
        return len(self.chunks)
