"""Tests for history query helpers."""

import pytest

from locale_storage.models import DetectionHistory, DetectionRecord, Locale
from locale_storage.query import (
    QueryConditions,
    get_detections_by_confidence,
    get_detections_by_locale,
    get_detections_by_source,
    get_detections_by_time_range,
    get_locale_group_stats,
    get_recent_detections,
    get_source_group_stats,
    get_time_distribution_stats,
    get_unique_locales,
    get_unique_sources,
    query_detections,
    search_detections,
)


def _record(ts, locale="zh", source="browser", confidence=0.9, metadata=None):
    return DetectionRecord(
        locale=locale, source=source, timestamp=ts, confidence=confidence, metadata=metadata
    )


@pytest.fixture
def history():
    # Newest first
    records = [
        _record(500, "en", "user", 1.0),
        _record(400, "zh", "browser", 0.9, {"header": "zh-CN"}),
        _record(300, "zh", "geo", 0.6),
        _record(200, "en", "browser", 0.4),
        _record(100, "zh", "browser", 0.2),
    ]
    return DetectionHistory(history=records, last_updated=500, total_detections=5)


class TestFilters:
    def test_recent(self, history):
        assert [r.timestamp for r in get_recent_detections(history, 2)] == [500, 400]
        assert get_recent_detections(history, 0) == []

    def test_by_source(self, history):
        assert [r.timestamp for r in get_detections_by_source(history, "browser")] == [
            400,
            200,
            100,
        ]

    def test_by_locale_enum(self, history):
        assert len(get_detections_by_locale(history, Locale.EN)) == 2

    def test_by_time_range_inclusive(self, history):
        records = get_detections_by_time_range(history, 200, 400)
        assert [r.timestamp for r in records] == [400, 300, 200]

    def test_by_confidence(self, history):
        assert [r.timestamp for r in get_detections_by_confidence(history, 0.6)] == [
            500,
            400,
            300,
        ]
        assert [r.timestamp for r in get_detections_by_confidence(history, 0.3, 0.7)] == [
            300,
            200,
        ]

    def test_empty_history(self):
        empty = DetectionHistory()
        assert get_detections_by_source(empty, "browser") == []
        assert get_unique_locales(empty) == []


class TestQueryDetections:
    def test_combined_conditions(self, history):
        result = query_detections(
            history, QueryConditions(locale="zh", source="browser", min_confidence=0.5)
        )
        assert [r.timestamp for r in result["records"]] == [400]
        assert result["total_count"] == 1
        assert result["has_more"] is False

    def test_sort_ascending_by_confidence(self, history):
        result = query_detections(
            history, QueryConditions(sort_by="confidence", sort_order="asc")
        )
        assert [r.confidence for r in result["records"]] == [0.2, 0.4, 0.6, 0.9, 1.0]

    def test_paging(self, history):
        page = query_detections(history, QueryConditions(offset=1, limit=2))
        assert [r.timestamp for r in page["records"]] == [400, 300]
        assert page["total_count"] == 5
        assert page["has_more"] is True

        last = query_detections(history, QueryConditions(offset=4, limit=2))
        assert last["has_more"] is False

    def test_time_window(self, history):
        result = query_detections(history, QueryConditions(start_time=250, end_time=450))
        assert result["total_count"] == 2


class TestSearchAndGroups:
    def test_search_metadata(self, history):
        assert [r.timestamp for r in search_detections(history, "ZH-cn")] == [400]

    def test_search_source(self, history):
        assert len(search_detections(history, "geo")) == 1

    def test_search_empty_term(self, history):
        assert len(search_detections(history, "")) == 5

    def test_uniques(self, history):
        assert get_unique_locales(history) == ["en", "zh"]
        assert get_unique_sources(history) == ["browser", "geo", "user"]

    def test_locale_groups(self, history):
        groups = get_locale_group_stats(history)
        assert groups[0]["locale"] == "zh"
        assert groups[0]["count"] == 3
        assert groups[0]["percentage"] == pytest.approx(60.0)
        assert groups[0]["avg_confidence"] == pytest.approx((0.9 + 0.6 + 0.2) / 3)

    def test_source_groups(self, history):
        groups = get_source_group_stats(history)
        assert groups[0] == {
            "source": "browser",
            "count": 3,
            "percentage": pytest.approx(60.0),
            "avg_confidence": pytest.approx(0.5),
        }

    def test_time_distribution(self, history):
        buckets = get_time_distribution_stats(history, 250)
        assert buckets == [
            {"start": 0, "end": 250, "count": 2},
            {"start": 250, "end": 500, "count": 2},
            {"start": 500, "end": 750, "count": 1},
        ]

    def test_time_distribution_bad_bucket(self, history):
        assert get_time_distribution_stats(history, 0) == []
