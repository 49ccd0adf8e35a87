"""
Tests for the Change Aggregator.

Covers:
  - Additivity of additions/reductions per shade
  - CREATE records credited with live quantity
  - Orphaned events and out-of-order input
  - Ranking and summaries
"""

from datetime import timedelta

from conftest import NOW, make_record, make_shade
from stocktrail.activity.aggregator import (
    compute_shade_analytics,
    compute_shade_changes,
    rank_shades,
    summarize_activity,
    summarize_stock_changes,
)

# ── Shade Analytics ────────────────────────────────────────────────────


class TestShadeAnalytics:
    def test_single_reduction_scenario(self):
        shades = [make_shade(1, "#ff0000", 117)]
        records = [make_record("UPDATE", "#ff0000: quantity: 137 → 117 (-20)")]

        analytics = compute_shade_analytics(shades, records)[1]

        assert analytics.total_reductions == 20
        assert analytics.reduction_count == 1
        assert analytics.current_quantity == 117

    def test_additivity(self):
        shades = [make_shade(1, "#ff0000", 28)]
        records = [
            make_record("UPDATE", "#ff0000: quantity: 20 → 30 (+10)", performed_at=NOW - timedelta(days=3)),
            make_record("UPDATE", "#ff0000: quantity: 30 → 26 (-4)", performed_at=NOW - timedelta(days=2)),
            make_record("UPDATE", "#ff0000: quantity: 26 → 28 (+2)", performed_at=NOW - timedelta(days=1)),
        ]

        analytics = compute_shade_analytics(shades, records)[1]

        assert analytics.total_additions == 12
        assert analytics.total_reductions == 4
        assert analytics.net_change == 8
        assert analytics.total_changes == 3
        assert analytics.last_updated == NOW - timedelta(days=1)

    def test_zero_delta_is_no_op(self):
        shades = [make_shade(1, "#ff0000", 5)]
        records = [make_record("UPDATE", "#ff0000: quantity: 5 → 5 (0)")]
        analytics = compute_shade_analytics(shades, records)[1]
        assert analytics.total_changes == 0
        assert analytics.net_change == 0

    def test_shade_without_events_keeps_zero_counters(self, shades):
        analytics = compute_shade_analytics(shades, [])
        assert set(analytics) == {1, 2, 3}
        for item in analytics.values():
            assert item.total_changes == 0
            assert item.net_change == 0

    def test_match_by_color_name(self):
        shades = [make_shade(7, "#123abc", 9, color_name="#navy")]
        records = [make_record("UPDATE", "#navy: quantity: 10 → 9 (-1)")]
        assert compute_shade_analytics(shades, records)[7].total_reductions == 1

    def test_match_is_case_insensitive(self):
        shades = [make_shade(1, "#FF0000", 3)]
        records = [make_record("UPDATE", "#ff0000: quantity: 5 → 3 (-2)")]
        assert compute_shade_analytics(shades, records)[1].reduction_count == 1

    def test_orphaned_events_are_dropped(self, shades):
        records = [make_record("UPDATE", "#deadbe: quantity: 5 → 1 (-4)")]
        analytics = compute_shade_analytics(shades, records)
        assert all(a.total_changes == 0 for a in analytics.values())

    def test_create_credits_live_quantity(self, shades):
        records = [make_record("CREATE", "Created Velvet with shades #ff0000, #204080 and #ff0000")]
        analytics = compute_shade_analytics(shades, records)
        assert analytics[1].total_additions == 117
        assert analytics[1].addition_count == 1
        assert analytics[2].total_additions == 40
        assert analytics[3].total_changes == 0

    def test_other_actions_are_ignored(self, shades):
        records = [
            make_record("ADJUST", "Stock DECREMENT: STK | 3 units | From: 7 → To: 4"),
            make_record("IMAGE_UPLOAD", "#ff0000: quantity: 5 → 1 (-4)"),
        ]
        analytics = compute_shade_analytics(shades, records)
        assert all(a.total_changes == 0 for a in analytics.values())


# ── Shade Changes ──────────────────────────────────────────────────────


class TestShadeChanges:
    def test_unordered_input_is_sorted(self, shades):
        later = make_record("UPDATE", "#ff0000: quantity: 130 → 117 (-13)", performed_at=NOW)
        earlier = make_record("CREATE", "Created with #ff0000", performed_at=NOW - timedelta(days=30))

        changes = compute_shade_changes(shades, [later, earlier])

        assert [c.action for c in changes] == ["CREATE", "UPDATE"]
        assert [c.change_type for c in changes] == ["increase", "decrease"]


# ── Ranking ────────────────────────────────────────────────────────────


class TestRanking:
    def test_most_active_first(self, shades):
        records = [
            make_record("UPDATE", "#204080: quantity: 50 → 45 (-5)"),
            make_record("UPDATE", "#204080: quantity: 45 → 40 (-5)"),
            make_record("UPDATE", "#ff0000: quantity: 118 → 117 (-1)"),
        ]
        ranked = rank_shades(compute_shade_analytics(shades, records))
        assert [a.shade_id for a in ranked] == [2, 1, 3]

    def test_to_dict_includes_derived_fields(self, shades):
        records = [make_record("UPDATE", "#ff0000: quantity: 137 → 117 (-20)")]
        data = compute_shade_analytics(shades, records)[1].to_dict()
        assert data["net_change"] == -20
        assert data["total_changes"] == 1


# ── Summaries ──────────────────────────────────────────────────────────


class TestSummaries:
    def test_activity_summary_counts(self, shades):
        records = [
            make_record("CREATE", "Created with #ff0000"),
            make_record("UPDATE", ""),
            make_record("UPDATE", ""),
            make_record("ADJUST", ""),
            make_record("IMAGE_UPLOAD", ""),
        ]
        summary = summarize_activity(records, shades)
        assert summary.total_activities == 5
        assert summary.created == 1
        assert summary.updated == 2
        assert summary.adjusted == 1
        assert summary.deleted == 0
        assert summary.image_uploads == 1
        assert summary.total_shades == 3
        assert summary.total_shade_quantity == 157

    def test_stock_change_summary(self, shades):
        records = [
            make_record("UPDATE", "#ff0000: quantity: 137 → 117 (-20)"),
            make_record("ADJUST", "ignored when newData is present", newData={"adjustment": 6, "oldQuantity": 4}),
            make_record("ADJUST", "Stock DECREMENT: STK | 3 units | From: 7 → To: 4"),
        ]
        changes = compute_shade_changes(shades, records)

        summary = summarize_stock_changes(changes, records)

        assert summary.increment_count == 1
        assert summary.increment_total == 6
        assert summary.decrement_count == 2
        assert summary.decrement_total == 23
        assert summary.net_change == -17
        assert summary.average_decrement == 11.5
        assert summary.average_net_change == round(-17 / 3, 1)

    def test_empty_stock_change_summary(self):
        summary = summarize_stock_changes([], [])
        assert summary.change_count == 0
        assert summary.average_increment == 0.0
        assert summary.average_net_change == 0.0
