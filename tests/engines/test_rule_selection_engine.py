"""
Tests for configuration selection.

Tests cover:
- filter matching (profile, org unit, value bounds)
- validity windows and inactive configurations
- ranking: priority, then specificity, then most recent
- NoMatchingConfigurationError when nothing applies
- approver value limits
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from approval_engines.rule_selection import (
    covers_value,
    matches_filters,
    rank_candidates,
    select_configuration,
    specificity,
)
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalStrategy,
    Approver,
    ConfigurationStatus,
)
from approval_kernel.exceptions import NoMatchingConfigurationError

NOW = datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)


def make_config(**overrides) -> ApprovalConfiguration:
    values = dict(
        action_type="benefit_decision",
        strategy=ApprovalStrategy.MAJORITY,
        time_limit_hours=24,
        created_at=NOW - timedelta(days=1),
    )
    values.update(overrides)
    return ApprovalConfiguration(**values)


def select(configs, **kwargs):
    kwargs.setdefault("action_type", "benefit_decision")
    return select_configuration(configs, now=NOW, **kwargs)


class TestMatchesFilters:
    def test_null_filters_match_anything(self):
        assert matches_filters(make_config(), None, None, None)
        assert matches_filters(make_config(), "manager", "hr", Decimal("5"))

    def test_value_bounds_are_inclusive(self):
        config = make_config(min_value=Decimal("100"), max_value=Decimal("200"))
        assert matches_filters(config, None, None, Decimal("100"))
        assert matches_filters(config, None, None, Decimal("200"))
        assert not matches_filters(config, None, None, Decimal("200.01"))

    def test_value_bound_requires_a_value(self):
        assert not matches_filters(make_config(min_value=Decimal("1")), None, None, None)

    def test_profile_and_org_unit_must_match(self):
        config = make_config(requester_profile="manager", org_unit="hr")
        assert not matches_filters(config, "clerk", "hr", None)
        assert not matches_filters(config, "manager", "finance", None)
        assert matches_filters(config, "manager", "hr", None)

    def test_specificity_counts_non_null_filters(self):
        assert specificity(make_config()) == 0
        assert specificity(make_config(org_unit="hr", min_value=Decimal("1"))) == 2


class TestSelectConfiguration:
    def test_no_candidates_raises(self):
        with pytest.raises(NoMatchingConfigurationError) as exc:
            select([], value=Decimal("10"))
        assert exc.value.action_type == "benefit_decision"

    def test_other_action_types_are_ignored(self):
        with pytest.raises(NoMatchingConfigurationError):
            select([make_config(action_type="financial_change")])

    def test_inactive_configuration_is_ignored(self):
        with pytest.raises(NoMatchingConfigurationError):
            select([make_config(status=ConfigurationStatus.INACTIVE)])

    def test_validity_window_is_respected(self):
        future = make_config(valid_from=NOW + timedelta(hours=1))
        ended = make_config(valid_until=NOW)
        with pytest.raises(NoMatchingConfigurationError):
            select([future, ended])

    def test_priority_rank_wins_over_specificity(self):
        specific = make_config(org_unit="hr", requester_profile="manager")
        prioritised = make_config(priority_rank=5)
        chosen = select([specific, prioritised], org_unit="hr", requester_profile="manager")
        assert chosen.id == prioritised.id

    def test_specificity_breaks_priority_ties(self):
        generic = make_config()
        specific = make_config(org_unit="hr")
        assert select([generic, specific], org_unit="hr").id == specific.id

    def test_most_recent_breaks_remaining_ties(self):
        older = make_config(created_at=NOW - timedelta(days=10))
        newer = make_config(created_at=NOW - timedelta(days=2))
        assert select([older, newer]).id == newer.id

    def test_ranking_is_deterministic_for_identical_keys(self):
        a = make_config()
        b = make_config()
        first = rank_candidates([a, b], "benefit_decision", None, None, None, NOW)
        second = rank_candidates([b, a], "benefit_decision", None, None, None, NOW)
        assert [c.id for c in first] == [c.id for c in second]

    def test_value_routes_to_matching_band(self):
        small = make_config(max_value=Decimal("10000"))
        large = make_config(min_value=Decimal("10000.01"), priority_rank=10)
        assert select([small, large], value=Decimal("500")).id == small.id
        assert select([small, large], value=Decimal("25000")).id == large.id


class TestApproverValueLimits:
    @pytest.mark.parametrize(
        "min_value,max_value,value,expected",
        [
            (None, None, None, True),
            (None, None, Decimal("10"), True),
            (Decimal("100"), None, Decimal("100"), True),
            (Decimal("100"), None, Decimal("99.99"), False),
            (None, Decimal("1000"), Decimal("1000"), True),
            (None, Decimal("1000"), Decimal("1000.01"), False),
            (None, Decimal("1000"), None, False),
            (Decimal("100"), Decimal("1000"), None, False),
        ],
    )
    def test_covers_value(self, min_value, max_value, value, expected):
        approver = Approver(
            user_id="ana", configuration_id=uuid4(), min_value=min_value, max_value=max_value,
        )
        assert covers_value(approver, value) is expected
