"""Operator-facing progress messages collected during one lifecycle operation."""

from __future__ import annotations

from dataclasses import dataclass, field

from device_inventory.utils.logging import get_logger

log = get_logger("discovery")

LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class OperatorMessage:
    level: str
    text: str

    def as_dict(self) -> dict[str, str]:
        return {"level": self.level, "text": self.text}


@dataclass
class MessageTrail:
    """Ordered trace of every decision point; mirrored to the structured log."""

    hostname: str | None = None
    messages: list[OperatorMessage] = field(default_factory=list)

    def add(self, level: str, text: str):
        self.messages.append(OperatorMessage(level, text))
        getattr(log, level if level in LEVELS else "info")("operator_message", hostname=self.hostname, text=text)

    def info(self, text: str):
        self.add("info", text)

    def warning(self, text: str):
        self.add("warning", text)

    def error(self, text: str):
        self.add("error", text)

    def texts(self) -> list[str]:
        return [m.text for m in self.messages]

    def __iter__(self):
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)
