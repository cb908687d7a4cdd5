from __future__ import annotations

import json
import time
from pathlib import Path
from queue import Full, Queue
from threading import Lock, Thread
from typing import IO, Any

from gemini_gateway.logging_config import render_log_path


class JsonlAuditLogger:
    """Appends HTTP traffic records to a date-stamped JSONL file.

    Records are queued by request handlers and written by a single daemon
    thread. When the queue is full the record is dropped and counted; the
    count is written as a marker record on close.
    """

    def __init__(
        self,
        directory: str | Path,
        pattern: str,
        date_pattern: str = "%Y-%m-%d",
        enabled: bool = True,
        max_queue_size: int = 8192,
    ) -> None:
        self.enabled = enabled
        self.directory = Path(directory)
        self.pattern = pattern
        self.date_pattern = date_pattern
        self._lock = Lock()
        self._queue: Queue[str | None] | None = None
        self._worker: Thread | None = None
        self._dropped_records = 0
        if self.enabled:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._queue = Queue(maxsize=max_queue_size)
            self._worker = Thread(
                target=self._drain_queue,
                args=(self._queue,),
                name="http-audit-writer",
                daemon=True,
            )
            self._worker.start()

    @property
    def path(self) -> Path:
        return render_log_path(self.directory, self.pattern, self.date_pattern)

    def log(self, event: dict[str, Any]) -> None:
        if not self.enabled:
            return

        record = {"ts": int(time.time()), **event}
        line = json.dumps(record, ensure_ascii=True, separators=(",", ":"), default=str)
        queue = self._queue
        if queue is None:
            return
        try:
            queue.put_nowait(line)
        except Full:
            with self._lock:
                self._dropped_records += 1

    def close(self) -> None:
        if not self.enabled:
            return None
        queue = self._queue
        worker = self._worker
        if queue is None or worker is None:
            return None
        self._queue = None
        queue.put(None)
        worker.join(timeout=2.0)
        self._worker = None
        return None

    def _drain_queue(self, queue: Queue[str | None]) -> None:
        handle: IO[str] | None = None
        current: Path | None = None
        try:
            while True:
                item = queue.get()
                if item is None:
                    queue.task_done()
                    break
                target = self.path
                if handle is None or target != current:
                    if handle is not None:
                        handle.close()
                    handle = target.open("a", encoding="utf-8")
                    current = target
                handle.write(item + "\n")
                handle.flush()
                queue.task_done()
            with self._lock:
                dropped = self._dropped_records
                self._dropped_records = 0
            if dropped > 0:
                fallback_record = {
                    "ts": int(time.time()),
                    "event": "audit_logger_dropped_records",
                    "dropped_count": dropped,
                }
                if handle is None:
                    handle = self.path.open("a", encoding="utf-8")
                handle.write(
                    json.dumps(fallback_record, ensure_ascii=True, separators=(",", ":"))
                    + "\n"
                )
                handle.flush()
        finally:
            if handle is not None:
                handle.close()
