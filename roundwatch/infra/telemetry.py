from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any


class RuntimeEventLogger:
    """JSONL event trail of what the watcher stored, skipped and failed.

    The file is rolled over to ``<name>.1`` once it passes ``max_bytes`` so a
    watcher left running for months does not fill the disk.
    """

    def __init__(
        self,
        data_dir: str,
        filename: str = "runtime_events.jsonl",
        *,
        source: str = "watcher",
        max_bytes: int = 20 * 1024 * 1024,
    ):
        self.path = Path(data_dir) / filename
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.source = source
        self.max_bytes = max(1024, int(max_bytes))
        self._lock = threading.Lock()

    def emit(self, event: str, **fields: Any) -> None:
        payload = {
            "ts": time.time(),
            "source": self.source,
            "event": event,
            **fields,
        }
        row = json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)
        with self._lock:
            self._maybe_rollover()
            with self.path.open("a", encoding="utf-8") as f:
                f.write(row + "\n")

    def _maybe_rollover(self) -> None:
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return
        if size >= self.max_bytes:
            self.path.replace(self.path.with_name(self.path.name + ".1"))

    def read(self, event: str | None = None) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        rows = [json.loads(ln) for ln in self.path.read_text(encoding="utf-8").splitlines() if ln.strip()]
        if event is not None:
            rows = [r for r in rows if r.get("event") == event]
        return rows
