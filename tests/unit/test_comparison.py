from datetime import date

import pytest

from podflow.services.comparison import build_comparison, comparison_periods
from podflow.services.rollup import Hierarchy

TODAY = date(2025, 12, 31)


@pytest.fixture
def hierarchy(book):
    return Hierarchy(book["advertisers"], book["agencies"], book["sellers"])


def test_comparison_periods_labels():
    assert [label for label, _ in comparison_periods(2025, "quarter")] == ["Q1 2025", "Q2 2025", "Q3 2025", "Q4 2025"]
    assert comparison_periods(2025, "year") == [("2025", list(range(1, 13)))]
    months = comparison_periods(2025, "month")
    assert months[0] == ("2025-01", [1])
    assert len(months) == 12
    with pytest.raises(ValueError):
        comparison_periods(2025, "week")


def test_quarterly_comparison(hierarchy, book, make_budget):
    current = book["rows"] + [make_budget("direct", 10000, 12000, month=4)]
    previous = [make_budget("direct", 0, 70000, year=2024, month=2)]

    response = build_comparison(hierarchy, current, previous, 2025, 2024, "quarter", today=TODAY)
    q1, q2, q3, _ = response.comparison

    assert q1.current_budget == 150000
    assert q1.current_actual == 140000
    assert q1.previous_actual == 70000
    assert q1.budget_variance == -10000
    assert q1.year_over_year_growth == pytest.approx(1.0)
    assert q1.is_on_target is False
    assert (q1.sellers_on_target, q1.sellers_off_target) == (0, 1)

    assert q2.current_budget == 10000
    assert q2.is_on_target is True
    assert q2.year_over_year_growth is None

    assert q3.current_budget == 0
    assert q3.budget_variance_percent is None
    assert (q3.sellers_on_target, q3.sellers_off_target) == (0, 0)


def test_summary_picks_best_and_worst_periods(hierarchy, book, make_budget):
    current = book["rows"] + [make_budget("direct", 10000, 12000, month=4)]

    response = build_comparison(hierarchy, current, [], 2025, 2024, "quarter", today=TODAY)
    summary = response.summary

    assert summary.periods_analyzed == 4
    assert summary.total_current_budget == 160000
    assert summary.total_current_actual == 152000
    assert summary.overall_variance == -8000
    assert summary.overall_yoy_growth is None
    assert summary.best_period.period == "Q2 2025"
    assert summary.worst_period.period == "Q1 2025"
    assert (summary.sellers_on_target, summary.sellers_off_target) == (0, 1)


def test_comparison_metadata_and_seller_scope(hierarchy, book):
    response = build_comparison(hierarchy, book["rows"], [], 2025, 2023, "year", seller_filter="bob", today=TODAY)

    assert response.metadata.compare_year == 2023
    assert response.metadata.group_by == "year"
    assert response.metadata.seller_id == "bob"
    assert response.comparison[0].current_budget == 0
    assert response.summary.best_period is None
