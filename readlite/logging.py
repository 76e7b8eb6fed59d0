"""Event logging for debugging streams and context pruning."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

# Log directory
LOG_DIR = Path.home() / ".readlite" / "logs"


def ensure_log_dir(log_dir: Optional[Path] = None) -> Path:
    """Create logs directory if it doesn't exist."""
    log_dir = Path(log_dir or LOG_DIR)
    if not log_dir.exists():
        log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


class EventLogger:
    """Writes engine events as JSON lines, one file per process."""

    def __init__(self, model_name: str = "unknown", log_dir: Optional[Path] = None, debug: bool = False):
        self.model_name = model_name
        self.debug = debug
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = ensure_log_dir(log_dir) / f"session_{self.session_id}.jsonl"
        self.enabled = True

        self._write_entry({
            "type": "session_start",
            "model": self.model_name,
            "timestamp": datetime.now().isoformat(),
        })

    def log_request(self, stream_id: str, prompt: str, options: Optional[dict] = None) -> None:
        """Log an outgoing stream request."""
        if not self.enabled:
            return
        self._write_entry({
            "type": "request",
            "stream_id": stream_id,
            "prompt": prompt[:500],
            "options": options or {},
            "timestamp": datetime.now().isoformat(),
        })

    def log_chunk(self, stream_id: str, chunk: str, index: int) -> None:
        """Log a single relayed chunk. Only written in debug mode."""
        if not self.enabled or not self.debug:
            return
        self._write_entry({
            "type": "chunk",
            "stream_id": stream_id,
            "index": index,
            "content": chunk,
            "timestamp": datetime.now().isoformat(),
        })

    def log_parse_error(self, line: str, reason: str) -> None:
        """Log an SSE line that could not be turned into text."""
        if not self.enabled:
            return
        self._write_entry({
            "type": "parse_error",
            "line": line[:500],
            "reason": reason,
            "timestamp": datetime.now().isoformat(),
        })

    def log_dead_channel(self, stream_id: str, message_type: str) -> None:
        """Log a message dropped because its channel is gone."""
        if not self.enabled:
            return
        self._write_entry({
            "type": "dead_channel",
            "stream_id": stream_id,
            "message_type": message_type,
            "timestamp": datetime.now().isoformat(),
        })

    def log_prune(self, tokens_before: int, tokens_after: int, kept: int, target: int) -> None:
        """Log a context pruning pass."""
        if not self.enabled:
            return
        self._write_entry({
            "type": "prune",
            "tokens_before": tokens_before,
            "tokens_after": tokens_after,
            "kept_messages": kept,
            "target_tokens": target,
            "timestamp": datetime.now().isoformat(),
        })

    def log_article_shrink(self, original_length: int, token_count: int, strategy: str) -> None:
        """Log an article context shrink."""
        if not self.enabled:
            return
        self._write_entry({
            "type": "article_shrink",
            "original_length": original_length,
            "token_count": token_count,
            "strategy": strategy,
            "timestamp": datetime.now().isoformat(),
        })

    def log_stream_end(self, stream_id: str, state: str, chunks: int, length: int) -> None:
        """Log the terminal state of a stream."""
        if not self.enabled:
            return
        self._write_entry({
            "type": "stream_end",
            "stream_id": stream_id,
            "state": state,
            "chunks": chunks,
            "length": length,
            "timestamp": datetime.now().isoformat(),
        })

    def log_error(self, error: str, stream_id: Optional[str] = None) -> None:
        """Log error."""
        if not self.enabled:
            return
        entry: dict[str, Any] = {
            "type": "error",
            "error": error,
            "timestamp": datetime.now().isoformat(),
        }
        if stream_id:
            entry["stream_id"] = stream_id
        self._write_entry(entry)

    def _write_entry(self, entry: dict) -> None:
        """Write a log entry to file."""
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError:
            pass  # logging must never break a stream

    @property
    def log_path(self) -> Path:
        """Return path to current log file."""
        return self.log_file


# Global logger instance
_logger: Optional[EventLogger] = None


def get_logger() -> EventLogger:
    """Get or create the global logger instance."""
    global _logger
    if _logger is None:
        _logger = EventLogger()
    return _logger


def init_logger(model_name: str = "unknown", log_dir: Optional[Path] = None, debug: bool = False) -> EventLogger:
    """Initialize logger with model name."""
    global _logger
    _logger = EventLogger(model_name, log_dir=log_dir, debug=debug)
    return _logger
