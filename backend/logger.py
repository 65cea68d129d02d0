"""
Rubber-Duck Trivia Logging
==========================
Structured, rotating file-based logging with dedicated completion-service
token-usage tracking. Logs are written to  backend/logs/  (or QUIZ_LOG_DIR).

Log files produced:
  - trivia.log             General backend log (all levels)
  - completion.log         Completion-service call details (prompt sizes, timing)
  - token_usage.jsonl      One JSON object per completion call – easy to grep/parse for spend analysis
  - game_events.jsonl      Structured game events (sessions, answers, AI actions) for analytics
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional
from contextvars import ContextVar

# ---------------------------------------------------------------------------
# Request / Correlation ID  (set per-request for traceability across logs)
# ---------------------------------------------------------------------------

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


def set_request_id(rid: str | None = None) -> str:
    """Set a correlation ID for the current request context. Returns the ID."""
    rid = rid or uuid.uuid4().hex[:12]
    _request_id.set(rid)
    return rid


def get_request_id() -> str:
    return _request_id.get("-")

# ---------------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------------

LOG_DIR = Path(os.environ.get("QUIZ_LOG_DIR") or Path(__file__).parent / "logs")

# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_VERBOSE_FMT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)-8s | %(name)-20s | [%(request_id)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    defaults={"request_id": "-"},
)

_CONSOLE_FMT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)

# ---------------------------------------------------------------------------
# Handler factory
# ---------------------------------------------------------------------------

def _rotating_handler(
    filename: str,
    max_bytes: int = 5 * 1024 * 1024,   # 5 MB per file
    backup_count: int = 5,
    level: int = logging.DEBUG,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        LOG_DIR / filename,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_VERBOSE_FMT)
    return handler

# ---------------------------------------------------------------------------
# Logger setup – call once at startup
# ---------------------------------------------------------------------------

_CONFIGURED = False


class _RequestIdFilter(logging.Filter):
    """Inject the current request_id context var into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()  # type: ignore[attr-defined]
        return True


def _jsonl_logger(name: str, filename: str) -> None:
    jsonl = logging.getLogger(name)
    jsonl.setLevel(logging.DEBUG)
    handler = _rotating_handler(
        filename,
        max_bytes=10 * 1024 * 1024,  # 10 MB
        backup_count=10,
        level=logging.DEBUG,
    )
    # JSONL lines should be raw – no formatter prefix
    handler.setFormatter(logging.Formatter("%(message)s"))
    jsonl.addHandler(handler)
    jsonl.propagate = False  # don't echo raw JSON to console


def setup_logging(*, console_level: int = logging.INFO) -> None:
    """Initialise all loggers.  Safe to call more than once."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    rid_filter = _RequestIdFilter()

    # ---- Root / general logger ------------------------------------------
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addFilter(rid_filter)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(_CONSOLE_FMT)
    root.addHandler(console)

    root.addHandler(_rotating_handler("trivia.log", level=logging.DEBUG))

    # ---- Completion-service logger --------------------------------------
    completion_logger = logging.getLogger("completion")
    completion_logger.setLevel(logging.DEBUG)
    completion_logger.addHandler(_rotating_handler("completion.log", level=logging.DEBUG))
    completion_logger.propagate = True

    # ---- Token-usage and game-event loggers (JSONL) ----------------------
    _jsonl_logger("completion.tokens", "token_usage.jsonl")
    _jsonl_logger("game.events", "game_events.jsonl")

    logging.getLogger("trivia").info(
        f"📁 Logging initialised – log directory: {LOG_DIR.resolve()}"
    )


# ---------------------------------------------------------------------------
# Convenience accessors
# ---------------------------------------------------------------------------

def get_logger(name: str = "trivia") -> logging.Logger:
    return logging.getLogger(name)


def get_completion_logger() -> logging.Logger:
    return logging.getLogger("completion")


def get_token_logger() -> logging.Logger:
    return logging.getLogger("completion.tokens")


def get_game_event_logger() -> logging.Logger:
    return logging.getLogger("game.events")


# ---------------------------------------------------------------------------
# Structured game-event helper
# ---------------------------------------------------------------------------

def log_game_event(
    event_type: str,
    *,
    topic: str | None = None,
    data: dict[str, Any] | None = None,
) -> None:
    """Write a structured JSON line to game_events.jsonl.

    Use for session lifecycle, answers and AI actions.
    Each line is self-contained and easy to query with jq / pandas.
    """
    record = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event_type,
        "request_id": get_request_id(),
    }
    if topic:
        record["topic"] = topic
    if data:
        record.update(data)
    get_game_event_logger().info(json.dumps(record, default=str))


# ---------------------------------------------------------------------------
# Token-usage helpers
# ---------------------------------------------------------------------------

class CompletionCallTracker:
    """Times a completion-service call and logs usage."""

    def __init__(
        self,
        *,
        endpoint: str = "complete",
        model: str = "",
        prompt_chars: int = 0,
        extra: dict[str, Any] | None = None,
    ):
        self.endpoint = endpoint
        self.model = model
        self.prompt_chars = prompt_chars
        self.extra = extra or {}
        self._start: float = 0.0
        self._finished = False
        self._log = get_completion_logger()
        self._token_log = get_token_logger()

    # Used as a context manager; finish() records the outcome
    def start(self) -> "CompletionCallTracker":
        self._start = time.time()
        self._log.info(
            "┌─ Completion call START  endpoint=%s  model=%s  prompt_chars=%d",
            self.endpoint,
            self.model,
            self.prompt_chars,
        )
        return self

    def finish(
        self,
        *,
        response_chars: int = 0,
        success: bool = True,
        error: str | None = None,
        status_code: int | None = None,
        token_usage: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._finished = True
        elapsed_ms = int((time.time() - self._start) * 1000)
        usage = _normalize_usage(token_usage)

        # Fill in estimates from known char counts when the service sent none
        if not usage:
            prompt_est = self.prompt_chars // 4 if self.prompt_chars else 0
            completion_est = response_chars // 4 if response_chars else 0
            usage = {
                "estimated": True,
                "prompt_tokens_est": prompt_est,
                "completion_tokens_est": completion_est,
                "total_tokens_est": prompt_est + completion_est,
            }

        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoint": self.endpoint,
            "model": self.model,
            "prompt_chars": self.prompt_chars,
            "response_chars": response_chars,
            "elapsed_ms": elapsed_ms,
            "success": success,
            "status_code": status_code,
            "error": error,
            "token_usage": usage,
            **self.extra,
        }

        self._token_log.info(json.dumps(record, default=str))

        usage_str = ""
        parts = []
        if usage.get("prompt_tokens"):
            parts.append(f"prompt={usage['prompt_tokens']}")
        if usage.get("completion_tokens"):
            parts.append(f"completion={usage['completion_tokens']}")
        if usage.get("total_tokens"):
            parts.append(f"total={usage['total_tokens']}")
        if parts:
            usage_str = "  tokens=[" + ", ".join(parts) + "]"

        status = "OK" if success else f"FAIL ({error})"
        self._log.info(
            "└─ Completion call END    endpoint=%s  status=%s  %dms  "
            "prompt=%d chars  response=%d chars%s",
            self.endpoint,
            status,
            elapsed_ms,
            self.prompt_chars,
            response_chars,
            usage_str,
        )
        return record

    def __enter__(self) -> "CompletionCallTracker":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        # Without an exception the caller has already finished with real data
        if exc_type is not None and not self._finished:
            self.finish(success=False, error=f"{exc_type.__name__}: {exc_val}")


def _normalize_usage(usage: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Keep the integer token counters from an OpenAI-style `usage` block."""
    if not isinstance(usage, dict):
        return {}
    normalized: dict[str, Any] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        try:
            if key in usage:
                normalized[key] = int(usage[key])
        except (TypeError, ValueError):
            continue
    if normalized and "total_tokens" not in normalized:
        normalized["total_tokens"] = (
            normalized.get("prompt_tokens", 0) + normalized.get("completion_tokens", 0)
        )
    return normalized


# ---------------------------------------------------------------------------
# Summary helper (served by /api/token-usage)
# ---------------------------------------------------------------------------

def summarize_token_usage(since_hours: float = 24) -> dict[str, Any]:
    """Parse token_usage.jsonl and return aggregate stats."""
    jsonl_path = LOG_DIR / "token_usage.jsonl"
    if not jsonl_path.exists():
        return {"error": "No token_usage.jsonl found", "calls": 0}

    cutoff = time.time() - since_hours * 3600
    calls: list[dict] = []
    total_prompt = 0
    total_completion = 0
    total_elapsed_ms = 0
    errors = 0
    endpoint_counts: dict[str, int] = {}
    slowest_call: dict[str, Any] | None = None

    with open(jsonl_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                rec = json.loads(line)
            except json.JSONDecodeError:
                continue
            ts_str = rec.get("timestamp", "")
            try:
                ts = datetime.fromisoformat(ts_str).timestamp()
            except (ValueError, TypeError):
                ts = 0
            if ts < cutoff:
                continue
            calls.append(rec)
            usage = rec.get("token_usage") or {}
            total_prompt += usage.get("prompt_tokens", usage.get("prompt_tokens_est", 0))
            total_completion += usage.get("completion_tokens", usage.get("completion_tokens_est", 0))
            elapsed = rec.get("elapsed_ms", 0)
            total_elapsed_ms += elapsed
            if not rec.get("success"):
                errors += 1

            ep = rec.get("endpoint", "unknown")
            endpoint_counts[ep] = endpoint_counts.get(ep, 0) + 1

            if slowest_call is None or elapsed > slowest_call.get("elapsed_ms", 0):
                slowest_call = {"endpoint": ep, "elapsed_ms": elapsed, "timestamp": ts_str}

    return {
        "period_hours": since_hours,
        "total_calls": len(calls),
        "successful_calls": len(calls) - errors,
        "failed_calls": errors,
        "error_rate_pct": round(errors / max(len(calls), 1) * 100, 1),
        "total_prompt_tokens": total_prompt,
        "total_completion_tokens": total_completion,
        "total_tokens": total_prompt + total_completion,
        "avg_elapsed_ms": total_elapsed_ms // max(len(calls), 1),
        "slowest_call": slowest_call,
        "endpoint_breakdown": endpoint_counts,
        "models_used": sorted({c.get("model", "unknown") for c in calls}),
    }
