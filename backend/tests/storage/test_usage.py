"""
Tests for UsageStore
"""
import json
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from storage.usage import MAX_HISTORY_DAYS, USAGE_FILE, USAGE_HISTORY_FILE, UsageStore, format_token_count


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class TestUsageStore:
    """Test suite for UsageStore"""

    @pytest.fixture
    def temp_dir(self):
        """Create temporary data directory"""
        temp = Path(tempfile.mkdtemp())
        yield temp
        if temp.exists():
            shutil.rmtree(temp)

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def usage(self, temp_dir, clock):
        return UsageStore(temp_dir, clock=clock)

    def test_empty_store(self, usage):
        assert usage.current().requests == 0
        assert usage.history() == []
        assert usage.today() is None

    def test_record_accumulates(self, usage, temp_dir):
        """Session totals add up and are persisted"""
        usage.record(0.25, input_tokens=1000, output_tokens=200, requests=2)
        session = usage.record(0.5, input_tokens=500, output_tokens=100)

        assert session.total_cost_usd == pytest.approx(0.75)
        assert session.input_tokens == 1500
        assert session.requests == 3
        stored = json.loads((temp_dir / USAGE_FILE).read_text(encoding="utf-8"))
        assert stored["requests"] == 3
        assert UsageStore(temp_dir).current().output_tokens == 300

    def test_daily_totals(self, usage, clock):
        """Each calendar day gets one entry, most recent first"""
        usage.record(0.1)
        clock.now += timedelta(days=1)
        usage.record(0.2)
        usage.record(0.3)

        days = usage.history()
        assert [d.date for d in days] == ["2026-03-02", "2026-03-01"]
        assert days[0].total_cost_usd == pytest.approx(0.5)
        assert days[0].requests == 2
        assert usage.today().date == "2026-03-02"
        assert [d.date for d in usage.history(1)] == ["2026-03-02"]

    def test_history_window(self, usage, clock, temp_dir):
        """Only the most recent days are kept"""
        for _ in range(MAX_HISTORY_DAYS + 5):
            usage.record(0.01)
            clock.now += timedelta(days=1)

        stored = json.loads((temp_dir / USAGE_HISTORY_FILE).read_text(encoding="utf-8"))
        assert len(stored) == MAX_HISTORY_DAYS
        assert stored[0]["date"] == "2026-03-06"

    def test_reset_keeps_history(self, usage, clock):
        usage.record(1.0, input_tokens=10)
        clock.now += timedelta(hours=1)

        session = usage.reset()

        assert session.total_cost_usd == 0.0
        assert session.started_at == clock.now
        assert usage.current().requests == 0
        assert len(usage.history()) == 1

    def test_malformed_session_starts_fresh(self, usage, temp_dir):
        (temp_dir / USAGE_FILE).write_text(json.dumps({"total_cost_usd": "lots"}), encoding="utf-8")

        assert usage.record(0.5).total_cost_usd == pytest.approx(0.5)

    def test_format_token_count(self):
        assert format_token_count(950) == "950"
        assert format_token_count(48543) == "48.5K"
        assert format_token_count(2_300_000) == "2.3M"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
