"""
Usage Store - coding agent spend per session and per day

Responsibilities:
- Accumulate cost and token counts for the current session (usage.json)
- Keep a rolling window of daily totals (usage_history.json)
- Reset the session without touching the daily history
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, Field, ValidationError

from storage.json_store import JSONFileStore

logger = logging.getLogger(__name__)

USAGE_FILE = "usage.json"
USAGE_HISTORY_FILE = "usage_history.json"
MAX_HISTORY_DAYS = 30


class SessionUsage(BaseModel):
    """Running totals since the session started"""
    started_at: datetime
    total_cost_usd: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    requests: int = 0


class DailyUsage(BaseModel):
    """Totals for one calendar day (UTC)"""
    date: str = Field(..., description="YYYY-MM-DD")
    total_cost_usd: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    requests: int = 0


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UsageStore:
    """
    Usage totals for one data directory.
    """

    def __init__(self, data_dir: Path, clock: Callable[[], datetime] = _now):
        self.data_dir = Path(data_dir)
        self.clock = clock
        self._session = JSONFileStore(self.data_dir / USAGE_FILE, default={})
        self._history = JSONFileStore(self.data_dir / USAGE_HISTORY_FILE, default=[])

    def _load_session(self, document: dict) -> SessionUsage:
        if document:
            try:
                return SessionUsage.model_validate(document)
            except ValidationError:
                logger.warning("[UsageStore] Session usage is malformed, starting a new session")
        return SessionUsage(started_at=self.clock())

    def record(self, cost_usd: float, input_tokens: int = 0, output_tokens: int = 0,
               requests: int = 1) -> SessionUsage:
        """
        Add one run's usage to the session and to today's total.

        Args:
            cost_usd: Reported cost of the run
            input_tokens: Prompt tokens
            output_tokens: Completion tokens
            requests: Number of agent calls the run made

        Returns:
            The updated session totals
        """
        with self._session.transaction() as document:
            session = self._load_session(document)
            session.total_cost_usd += cost_usd
            session.input_tokens += input_tokens
            session.output_tokens += output_tokens
            session.requests += requests
            document.clear()
            document.update(session.model_dump(mode="json"))

        today = self.clock().strftime("%Y-%m-%d")
        with self._history.transaction() as days:
            entry = next((d for d in days if isinstance(d, dict) and d.get("date") == today), None)
            if entry is None:
                entry = DailyUsage(date=today).model_dump()
                days.append(entry)
            entry["total_cost_usd"] = entry.get("total_cost_usd", 0.0) + cost_usd
            entry["input_tokens"] = entry.get("input_tokens", 0) + input_tokens
            entry["output_tokens"] = entry.get("output_tokens", 0) + output_tokens
            entry["requests"] = entry.get("requests", 0) + requests
            del days[:-MAX_HISTORY_DAYS]
        return session

    def current(self) -> SessionUsage:
        return self._load_session(self._session.read())

    def reset(self) -> SessionUsage:
        """Start a new session; daily history is kept"""
        session = SessionUsage(started_at=self.clock())
        self._session.write(session.model_dump(mode="json"))
        logger.info("[UsageStore] Session usage reset")
        return session

    def history(self, days: int = 0) -> List[DailyUsage]:
        """
        Daily totals, most recent first.

        Args:
            days: How many days to return; 0 or less means all kept days
        """
        entries = []
        for raw in self._history.read():
            try:
                entries.append(DailyUsage.model_validate(raw))
            except ValidationError:
                logger.warning("[UsageStore] Skipping malformed daily usage entry")
        entries.reverse()
        return entries[:days] if days > 0 else entries

    def today(self) -> Optional[DailyUsage]:
        today = self.clock().strftime("%Y-%m-%d")
        return next((d for d in self.history() if d.date == today), None)


def format_token_count(tokens: int) -> str:
    """48543 -> 48.5K"""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(tokens)


__all__ = [
    "UsageStore",
    "SessionUsage",
    "DailyUsage",
    "USAGE_FILE",
    "USAGE_HISTORY_FILE",
    "MAX_HISTORY_DAYS",
    "format_token_count",
]
