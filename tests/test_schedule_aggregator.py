"""
Tests for schedule aggregation
"""
from datetime import date

import pytest

from models.config import EngineConfig
from models.schedule import ScheduleSnapshot
from modules.schedule_aggregator import (
    SUMMARY_COLUMNS,
    ScheduleAggregator,
    get_summary_dataframe,
    hours_to_value,
    round_percentage,
    value_to_hours,
)
from tests.conftest import make_entries


@pytest.fixture
def aggregator(config):
    return ScheduleAggregator(config)


@pytest.fixture
def first_week(sprint_one_days):
    return sprint_one_days[:5]


class TestHourHelpers:

    @pytest.mark.parametrize("value,hours", [("1", 7.0), ("0.5", 3.5), ("X", 0.0), (None, 0.0), ("", 0.0)])
    def test_value_to_hours(self, value, hours):
        assert value_to_hours(value) == hours

    def test_unknown_value_counts_zero_and_warns(self, caplog):
        assert value_to_hours("2") == 0.0
        assert "Unknown schedule value" in caplog.text

    @pytest.mark.parametrize("hours,value", [(7, "1"), (8, "1"), (3.5, "0.5"), (6.9, "0.5"), (1, "X"), (0, "X")])
    def test_hours_to_value(self, hours, value):
        assert hours_to_value(hours) == value

    def test_round_percentage_rounds_half_up(self):
        assert round_percentage(2.5) == 3
        assert round_percentage(12.5) == 13
        assert round_percentage(69.4) == 69


class TestSummarizeMember:

    def test_scenario_b(self, aggregator, first_week):
        entries = make_entries(7, dict(zip(first_week, ["1", "1", "0.5", "X", "1"])))

        summary = aggregator.summarize_member(7, entries, first_week)

        assert summary.actual_hours == 24.5
        assert summary.potential_hours == 35.0
        assert summary.completion_percentage == 100
        assert summary.utilization_percentage == 70
        assert summary.status == "excellent"
        assert summary.missing_days == 0

    def test_zero_working_days_is_critical(self, aggregator):
        summary = aggregator.summarize_member(7, {}, [])

        assert summary.potential_hours == 0
        assert summary.completion_percentage == 0
        assert summary.utilization_percentage == 0
        assert summary.status == "critical"

    def test_entries_outside_window_are_ignored(self, aggregator, first_week):
        outside = date(2025, 8, 3)
        entries = make_entries(7, {first_week[0]: "1", outside: "1"})

        summary = aggregator.summarize_member(7, entries, first_week)

        assert summary.actual_hours == 7.0
        assert summary.working_days_filled == 1
        assert summary.completion_percentage == 20

    def test_cleared_entries_do_not_count_as_filled(self, aggregator, first_week):
        entries = make_entries(7, {first_week[0]: "1", first_week[1]: None})
        summary = aggregator.summarize_member(7, entries, first_week)
        assert summary.working_days_filled == 1

    @pytest.mark.parametrize("filled,status", [(10, "excellent"), (9, "good"), (7, "warning"), (6, "critical")])
    def test_status_bands(self, aggregator, sprint_one_days, filled, status):
        entries = make_entries(7, {day: "X" for day in sprint_one_days[:filled]})
        assert aggregator.summarize_member(7, entries, sprint_one_days).status == status

    def test_thresholds_are_injected(self, first_week):
        config = EngineConfig(status_thresholds={'excellent': 60, 'good': 40, 'warning': 20})
        aggregator = ScheduleAggregator(config)
        entries = make_entries(7, {day: "1" for day in first_week[:3]})
        assert aggregator.summarize_member(7, entries, first_week).status == "excellent"

    def test_is_pure(self, aggregator, first_week):
        entries = make_entries(7, dict(zip(first_week, ["1", "0.5", "X", "1", "1"])))
        before = dict(entries)

        first = aggregator.summarize_member(7, entries, first_week)
        second = aggregator.summarize_member(7, entries, first_week)

        assert first == second
        assert entries == before


class TestSummarizeTeam:

    def test_zero_members(self, aggregator):
        team = aggregator.summarize_team([])

        assert team.total_members == 0
        assert team.max_capacity_hours == 0
        assert team.utilization_percentage == 0
        assert team.status_counts == {'excellent': 0, 'good': 0, 'warning': 0, 'critical': 0}

    def test_totals(self, aggregator, first_week):
        full = aggregator.summarize_member(1, make_entries(1, {day: "1" for day in first_week}), first_week)
        empty = aggregator.summarize_member(2, {}, first_week)

        team = aggregator.summarize_team([full, empty])

        assert team.total_members == 2
        assert team.max_capacity_hours == 70.0
        assert team.actual_hours == 35.0
        assert team.utilization_percentage == 50
        assert team.completion_percentage == 50
        assert team.status_counts['excellent'] == 1
        assert team.status_counts['critical'] == 1

    def test_summarize_snapshot_includes_listed_members(self, aggregator, first_week):
        snapshot = ScheduleSnapshot(1, first_week[0], first_week[-1], {
            1: make_entries(1, {first_week[0]: "1"}),
        })

        team = aggregator.summarize_snapshot(snapshot, first_week, member_ids=[2, 1])

        assert [s.member_id for s in team.member_summaries] == [2, 1]
        assert team.member_summaries[0].working_days_filled == 0


class TestSummaryDataFrame:

    def test_sorted_by_completion(self, aggregator, first_week):
        full = aggregator.summarize_member(1, make_entries(1, {day: "1" for day in first_week}), first_week)
        empty = aggregator.summarize_member(2, {}, first_week)

        summary_df = get_summary_dataframe([full, empty], {1: "Dana", 2: "Sami"})

        assert list(summary_df.columns) == SUMMARY_COLUMNS
        assert list(summary_df['Member']) == ["Sami", "Dana"]
        assert summary_df.iloc[0]['Status_Icon'] == '🔴'

    def test_empty(self):
        summary_df = get_summary_dataframe([])
        assert summary_df.empty
        assert list(summary_df.columns) == SUMMARY_COLUMNS
