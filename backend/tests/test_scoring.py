"""
Tests for severity, effort and priority scoring
"""

import pytest

from legacylens.core.scoring import (
    calculate_severity, calculate_eta, calculate_minutes_saved, get_priority_score,
    sort_by_priority, group_by_severity, calculate_stats, build_scan_stats, hours_from_minutes
)


class TestSeverity:

    @pytest.mark.parametrize("rule_id,severity", [
        ("hardcoded-secrets", "critical"),
        ("sql-injection", "critical"),
        ("eval-usage", "high"),
        ("no-validation", "high"),
        ("empty-catch", "medium"),
        ("no-http-timeout", "medium"),
        ("god-file", "low"),
        ("todo-clusters", "low"),
        ("something-new", "medium"),
    ])
    def test_rule_mapping(self, rule_id, severity):
        assert calculate_severity(rule_id) == severity


class TestEta:

    def test_rule_buckets_win_over_snippet_length(self):
        long_snippet = "x" * 500
        assert calculate_eta("hardcoded-secrets", long_snippet) == "easy"
        assert calculate_eta("god-file", "short") == "large"

    def test_snippet_length_for_other_rules(self):
        assert calculate_eta("eval-usage", "eval(x)") == "medium"
        assert calculate_eta("eval-usage", "x" * 301) == "large"
        assert calculate_eta("eval-usage", "x" * 300) == "medium"
        assert calculate_eta("eval-usage", None) == "medium"


class TestMinutesAndPriority:

    def test_minutes_saved_ignores_effort(self):
        assert calculate_minutes_saved("critical", "easy") == 17
        assert calculate_minutes_saved("critical", "large") == 17
        assert calculate_minutes_saved("high", "medium") == 14
        assert calculate_minutes_saved("medium", "easy") == 9
        assert calculate_minutes_saved("low", "large") == 5
        assert calculate_minutes_saved("unknown", "easy") == 9

    def test_priority_orders_severity_before_effort(self):
        assert get_priority_score("critical", "large") > get_priority_score("high", "easy")
        assert get_priority_score("high", "easy") > get_priority_score("high", "large")
        assert get_priority_score("critical", "easy") == 1003

    def test_sort_is_stable(self):
        findings = [
            {"id": "a", "severity": "low", "eta": "easy"},
            {"id": "b", "severity": "critical", "eta": "large"},
            {"id": "c", "severity": "low", "eta": "easy"},
            {"id": "d", "severity": "critical", "eta": "easy"},
        ]
        assert [f["id"] for f in sort_by_priority(findings)] == ["d", "b", "a", "c"]

    def test_group_by_severity_keeps_all_buckets(self):
        groups = group_by_severity([{"severity": "high"}, {"severity": "high"}])
        assert list(groups.keys()) == ["critical", "high", "medium", "low"]
        assert len(groups["high"]) == 2
        assert groups["critical"] == []


class TestStats:

    def test_hours_rounding(self):
        assert hours_from_minutes(0) == 0.0
        assert hours_from_minutes(31) == 0.5
        assert hours_from_minutes(90) == 1.5

    def test_calculate_stats(self):
        findings = [
            {"severity": "critical", "category": "security", "minutesSaved": 17},
            {"severity": "medium", "category": "reliability", "minutesSaved": 9},
            {"severity": "medium", "category": "reliability", "minutesSaved": 9},
        ]
        stats = calculate_stats(findings)

        assert stats["total"] == 3
        assert stats["criticalCount"] == 1
        assert stats["mediumCount"] == 2
        assert stats["totalMinutes"] == 35
        assert stats["totalHours"] == 0.6
        assert stats["byCategory"] == {"security": 1, "reliability": 2, "maintainability": 0}

    def test_build_scan_stats_with_metadata(self):
        metadata = {"totalFiles": 12, "totalLines": 0, "languages": ["Python"], "frameworks": ["Django"]}
        stats = build_scan_stats(metadata, [{"severity": "low", "category": "maintainability", "minutesSaved": 5}])

        assert stats["totalFiles"] == 12
        assert stats["languages"] == ["Python"]
        assert stats["frameworks"] == ["Django"]
        assert stats["lowCount"] == 1
        assert "total" not in stats

    def test_build_scan_stats_without_metadata(self):
        stats = build_scan_stats(None, [])
        assert stats["totalFiles"] == 0
        assert stats["totalHours"] == 0.0
