# =============================================================================
# Unit Tests — Freshness Ordering
# =============================================================================

from datetime import datetime

from app.services.dispatcher import RetrievalResult
from app.services.freshness import (
    cadence_rank,
    most_recent_first,
    parse_date,
)


def _result(text, freshness, **metadata):
    return RetrievalResult(text=text, source="s", freshness=freshness, metadata=metadata)


class TestParseDate:

    def test_full_date(self):
        assert parse_date("2025-12-01") == datetime(2025, 12, 1)

    def test_year_month(self):
        assert parse_date("2026-01") == datetime(2026, 1, 1)

    def test_timezone_dropped(self):
        assert parse_date("2026-01-15T10:00:00Z") == datetime(2026, 1, 15, 10, 0)

    def test_garbage_is_none(self):
        assert parse_date("last Tuesday") is None
        assert parse_date(None) is None
        assert parse_date("") is None


class TestCadenceRank:

    def test_ordering(self):
        labels = [
            "real-time", "updated hourly", "updated daily",
            "updated weekly", "updated monthly", "updated quarterly",
            "updated yearly",
        ]
        ranks = [cadence_rank(label) for label in labels]
        assert ranks == sorted(ranks, reverse=True)
        assert len(set(ranks)) == len(ranks)

    def test_unknown_label_ranks_lowest(self):
        assert cadence_rank("every release") == 0


class TestMostRecentFirst:

    def test_newer_date_wins_over_fresher_label(self):
        old_hourly = _result("old", "updated hourly", effective_date="2025-06-01")
        new_weekly = _result("new", "updated weekly", updated_at="2026-01-15")
        ordered = most_recent_first([old_hourly, new_weekly])
        assert [r.text for r in ordered] == ["new", "old"]

    def test_dated_results_rank_ahead_of_undated(self):
        undated_live = _result("live", "real-time")
        dated_weekly = _result("dated", "updated weekly", date="2024-01-01")
        ordered = most_recent_first([undated_live, dated_weekly])
        assert [r.text for r in ordered] == ["dated", "live"]

    def test_label_breaks_ties_without_dates(self):
        ordered = most_recent_first([
            _result("weekly", "updated weekly"),
            _result("hourly", "updated hourly"),
            _result("daily", "updated daily"),
        ])
        assert [r.text for r in ordered] == ["hourly", "daily", "weekly"]

    def test_stable_for_equal_keys(self):
        ordered = most_recent_first([
            _result("first", "updated daily"),
            _result("second", "updated daily"),
        ])
        assert [r.text for r in ordered] == ["first", "second"]
