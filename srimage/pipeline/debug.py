from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional


@dataclass(frozen=True)
class TraceEvent:
    """One diagnostic event (stage-tagged, timestamped)."""

    t_iso: str
    stage: str
    level: str
    message: str


class RenderTrace:
    """Collects per-call render diagnostics (skips, fallbacks, timings).

    Events can be forwarded to a callback as they arrive and written to a
    text file afterwards.
    """

    def __init__(self, log_cb: Optional[Callable[[str], None]] = None):
        self._log_cb = log_cb
        self.events: List[TraceEvent] = []

    def log(self, stage: str, message: str, level: str = "info") -> None:
        ev = TraceEvent(
            t_iso=datetime.now().isoformat(timespec="seconds"),
            stage=str(stage),
            level=str(level).lower(),
            message=str(message),
        )
        if self._log_cb is not None:
            self._log_cb(f"[{ev.stage}] {ev.message}")
        self.events.append(ev)

    def warn(self, stage: str, message: str) -> None:
        self.log(stage, message, level="warning")

    @property
    def warnings(self) -> List[TraceEvent]:
        return [e for e in self.events if e.level == "warning"]

    def as_lines(self) -> List[str]:
        return [f"{e.t_iso} | {e.level.upper()} | {e.stage}: {e.message}" for e in self.events]

    def save_text(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = self.as_lines()
        path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
