"""
Tests for reimburse_engines.matching -- receipt/expense candidate ranking.

Covers amount tolerance (inclusive boundary), day difference with the
missing-date fallback, category rule, confidence tiers, ranking, the
top-three cut, the optional window exclusion and already-matched pinning.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from reimburse_kernel.domain.types import Confidence, MatchRules
from reimburse_engines.matching import (
    ALREADY_MATCHED_REASON,
    MAX_CANDIDATES,
    ExpenseCandidate,
    MatchSuggestion,
    ReceiptSignal,
    categories_match,
    confidence_for,
    day_difference,
    find_candidates,
    pin_matched_candidate,
    reason_for,
    score_for,
)

TODAY = date(2024, 3, 15)


def _expense(amount="100.00", on=TODAY, category=None, expense_id=None):
    return ExpenseCandidate(
        expense_id=expense_id or uuid4(),
        amount=Decimal(amount),
        date=on,
        category=category,
    )


def _rank(receipt, expenses, rules=None):
    return find_candidates(
        receipt=receipt, expenses=expenses, rules=rules or MatchRules(), today=TODAY,
    )


# =============================================================================
# Building blocks
# =============================================================================


class TestHelpers:
    def test_day_difference_is_absolute(self):
        assert day_difference(date(2024, 3, 1), date(2024, 3, 4), TODAY) == 3
        assert day_difference(date(2024, 3, 4), date(2024, 3, 1), TODAY) == 3

    def test_missing_date_counts_as_today(self):
        assert day_difference(None, TODAY - timedelta(days=5), TODAY) == 5
        assert day_difference(None, None, TODAY) == 0

    @pytest.mark.parametrize(
        "required, receipt_cat, expense_cat, expected",
        [
            (False, "meals", "travel", True),
            (True, "meals", "travel", False),
            (True, "travel", "travel", True),
            (True, None, "travel", True),
            (True, "travel", "", True),
        ],
    )
    def test_categories_match(self, required, receipt_cat, expense_cat, expected):
        assert categories_match(receipt_cat, expense_cat, required) is expected

    @pytest.mark.parametrize(
        "days, category_match, expected",
        [
            (0, True, Confidence.HIGH),
            (1, True, Confidence.HIGH),
            (1, False, Confidence.MEDIUM),
            (3, True, Confidence.MEDIUM),
            (4, True, Confidence.LOW),
        ],
    )
    def test_confidence_tiers(self, days, category_match, expected):
        assert confidence_for(days, category_match) is expected

    def test_score(self):
        assert score_for(0, True) == 12
        assert score_for(0, False) == 10
        assert score_for(25, True) == 2

    def test_reason(self):
        assert reason_for(2, True) == "date+/-2d + category"
        assert reason_for(0, False) == "date+/-0d"


# =============================================================================
# find_candidates
# =============================================================================


class TestAmountTolerance:
    def test_difference_equal_to_tolerance_is_included(self):
        rules = MatchRules(amount_tolerance=Decimal("5.00"))
        expense = _expense("105.00")

        result = _rank(ReceiptSignal(amount=Decimal("100.00"), date=TODAY), [expense], rules)

        assert [c.expense_id for c in result] == [expense.expense_id]

    def test_one_cent_beyond_tolerance_is_excluded(self):
        rules = MatchRules(amount_tolerance=Decimal("5.00"))

        result = _rank(
            ReceiptSignal(amount=Decimal("100.00"), date=TODAY), [_expense("105.01")], rules,
        )

        assert result == ()

    def test_zero_tolerance_requires_exact_amount(self):
        exact = _expense("42.50")
        result = _rank(ReceiptSignal(amount=Decimal("42.50")), [exact, _expense("42.51")])
        assert [c.expense_id for c in result] == [exact.expense_id]

    def test_unknown_amount_never_excludes(self):
        expenses = [_expense("1.00"), _expense("9999.99")]
        result = _rank(ReceiptSignal(amount=None, date=TODAY), expenses)
        assert len(result) == 2


class TestRanking:
    def test_closest_date_ranks_first(self):
        far = _expense(on=TODAY - timedelta(days=6))
        near = _expense(on=TODAY - timedelta(days=1))
        mid = _expense(on=TODAY - timedelta(days=3))

        result = _rank(ReceiptSignal(date=TODAY), [far, near, mid])

        assert [c.expense_id for c in result] == [near.expense_id, mid.expense_id, far.expense_id]
        assert [c.confidence for c in result] == [
            Confidence.HIGH, Confidence.MEDIUM, Confidence.LOW,
        ]
        assert result[0].reason == "date+/-1d + category"

    def test_returns_top_three(self):
        expenses = [_expense(on=TODAY - timedelta(days=d)) for d in range(6)]
        result = _rank(ReceiptSignal(date=TODAY), expenses)

        assert len(result) == MAX_CANDIDATES
        assert [c.expense_id for c in result] == [e.expense_id for e in expenses[:3]]

    def test_ties_keep_input_order(self):
        a, b = _expense(), _expense()
        result = _rank(ReceiptSignal(date=TODAY), [a, b])
        assert [c.expense_id for c in result] == [a.expense_id, b.expense_id]

    def test_required_category_mismatch_lowers_tier(self):
        rules = MatchRules(require_category_match=True)
        same = _expense(category="travel", on=TODAY - timedelta(days=1))
        other = _expense(category="meals")

        result = _rank(ReceiptSignal(date=TODAY, category="travel"), [other, same], rules)

        assert result[0].expense_id == same.expense_id
        assert result[0].confidence is Confidence.HIGH
        assert result[1].confidence is Confidence.MEDIUM
        assert result[1].reason == "date+/-0d"

    def test_low_candidates_kept_by_default(self):
        old = _expense(on=TODAY - timedelta(days=40))
        result = _rank(ReceiptSignal(date=TODAY), [old])
        assert result[0].confidence is Confidence.LOW

    def test_window_exclusion_drops_low_candidates_outside_window(self):
        rules = MatchRules(date_window_days=3, exclude_outside_window=True)
        inside = _expense(on=TODAY - timedelta(days=3))
        outside = _expense(on=TODAY - timedelta(days=4))

        result = _rank(ReceiptSignal(date=TODAY), [inside, outside], rules)

        assert [c.expense_id for c in result] == [inside.expense_id]

    def test_missing_receipt_date_scores_against_today(self):
        old = _expense(on=TODAY - timedelta(days=30))
        result = _rank(ReceiptSignal(date=None), [old])
        assert result[0].confidence is Confidence.LOW

    def test_emits_engine_trace(self, captured_logs):
        _rank(ReceiptSignal(date=TODAY), [_expense()])
        traces = [r for r in captured_logs() if r["message"] == "REIMBURSE_ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "matching"
        assert len(traces[-1]["input_fingerprint"]) == 16


# =============================================================================
# Properties
# =============================================================================

_offsets = st.integers(min_value=-15, max_value=15)
_categories = st.sampled_from([None, "travel", "meals"])


@st.composite
def _scenarios(draw):
    rows = draw(st.lists(st.tuples(_offsets, _categories), min_size=0, max_size=8))
    expenses = [
        _expense(on=TODAY + timedelta(days=offset), category=category)
        for offset, category in rows
    ]
    receipt = ReceiptSignal(
        amount=Decimal("100.00"), date=TODAY, category=draw(_categories),
    )
    rules = MatchRules(require_category_match=draw(st.booleans()))
    return receipt, expenses, rules


class TestProperties:
    @settings(max_examples=75, deadline=None)
    @given(_scenarios())
    def test_same_inputs_same_output(self, scenario):
        receipt, expenses, rules = scenario
        assert _rank(receipt, expenses, rules) == _rank(receipt, expenses, rules)

    @settings(max_examples=75, deadline=None)
    @given(_scenarios())
    def test_same_day_category_match_outranks_distant_dates(self, scenario):
        receipt, expenses, rules = scenario
        by_id = {e.expense_id: e for e in expenses}
        result = _rank(receipt, expenses, rules)

        def days(expense_id):
            return abs((by_id[expense_id].date - receipt.date).days)

        def matches(expense_id):
            return categories_match(
                receipt.category, by_id[expense_id].category, rules.require_category_match,
            )

        best = {
            e.expense_id for e in expenses if days(e.expense_id) == 0 and matches(e.expense_id)
        }
        returned = [c.expense_id for c in result]
        for position, expense_id in enumerate(returned):
            if days(expense_id) > 1:
                # Every ideal candidate was returned, and before this one.
                assert best <= set(returned[:position])

    @settings(max_examples=50, deadline=None)
    @given(_scenarios())
    def test_never_more_than_three(self, scenario):
        receipt, expenses, rules = scenario
        assert len(_rank(receipt, expenses, rules)) <= MAX_CANDIDATES


# =============================================================================
# Pinning
# =============================================================================


class TestPinning:
    def test_linked_expense_inserted_first(self):
        ranked = (MatchSuggestion(expense_id="e2", confidence=Confidence.MEDIUM, reason="date+/-2d"),)

        pinned = pin_matched_candidate(ranked, "e1")

        assert pinned[0] == MatchSuggestion(
            expense_id="e1", confidence=Confidence.HIGH, reason=ALREADY_MATCHED_REASON,
        )
        assert pinned[1:] == ranked

    def test_linked_expense_already_ranked_is_not_duplicated(self):
        ranked = (
            MatchSuggestion(expense_id="e2", confidence=Confidence.HIGH, reason="date+/-0d"),
            MatchSuggestion(expense_id="e1", confidence=Confidence.LOW, reason="date+/-9d"),
        )
        assert pin_matched_candidate(ranked, "e1") == ranked

    def test_unlinked_receipt_unchanged(self):
        assert pin_matched_candidate((), None) == ()

    def test_pinned_even_when_filtered_out(self):
        linked = _expense("500.00")
        ranked = _rank(ReceiptSignal(amount=Decimal("10.00"), date=TODAY), [linked])
        assert ranked == ()

        pinned = pin_matched_candidate(ranked, linked.expense_id)
        assert [c.expense_id for c in pinned] == [linked.expense_id]
