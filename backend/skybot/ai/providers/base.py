from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

Role = Literal["user", "assistant"]


class AiError(RuntimeError):
    pass


class AiNotConfigured(AiError):
    pass


class AiUpstreamError(AiError):
    pass


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, raw: object) -> ChatTurn | None:
        if not isinstance(raw, dict):
            return None
        role = str(raw.get("role") or "").strip().lower()
        if role not in ("user", "assistant"):
            return None
        return cls(role=role, content=str(raw.get("content") or ""))  # type: ignore[arg-type]


class AiProvider(ABC):
    """
    One text-completion backend.

    ``configured`` is read on every call so a key added or removed at runtime
    takes effect without rebuilding the chain. ``respond`` raises on failure;
    None or blank text counts as "no answer".
    """

    name: str

    @property
    @abstractmethod
    def configured(self) -> bool: ...

    @abstractmethod
    def respond(self, message: str, system_prompt: str, history: list[ChatTurn]) -> str | None: ...


def clip(s: str, max_len: int) -> str:
    s = str(s or "")
    return s if len(s) <= max_len else s[:max_len]
