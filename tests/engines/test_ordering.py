"""
Tests for priority management.

Covers:
- reorder assigns 0..n-1 in list order and rejects non-permutations
- restrictive ordering (deny, require_approval, allow; ties by id)
- next_priority for new policies
"""

import pytest

from policy_engines.ordering import next_priority, reorder, restrictive_order
from policy_kernel.domain.policy import Policy, PolicyAction
from policy_kernel.exceptions import PolicyValidationError


def _policies() -> list[Policy]:
    return [
        Policy(id=1, name="one", priority=0, action=PolicyAction.ALLOW),
        Policy(id=2, name="two", priority=1, action=PolicyAction.DENY),
        Policy(id=3, name="three", priority=2, action=PolicyAction.REQUIRE_APPROVAL,
               approvers=("Meir",)),
    ]


class TestReorder:

    def test_priorities_follow_list_order(self):
        reordered = reorder(_policies(), [3, 1, 2])

        assert {p.id: p.priority for p in reordered} == {3: 0, 1: 1, 2: 2}
        assert [p.id for p in reordered] == [3, 1, 2]

    def test_identity_order_keeps_priorities(self):
        reordered = reorder(_policies(), [1, 2, 3])

        assert [p.priority for p in reordered] == [0, 1, 2]

    def test_other_fields_are_untouched(self):
        reordered = reorder(_policies(), [2, 3, 1])

        by_id = {p.id: p for p in reordered}
        assert by_id[3].approvers == ("Meir",)
        assert by_id[2].action == PolicyAction.DENY

    @pytest.mark.parametrize(
        "ordered_ids, message",
        [
            ([1, 2], "missing policy ids: [3]"),
            ([1, 2, 3, 4], "unknown policy ids: [4]"),
            ([1, 1, 2, 3], "duplicate"),
        ],
    )
    def test_non_permutation_is_rejected(self, ordered_ids, message):
        with pytest.raises(PolicyValidationError) as exc_info:
            reorder(_policies(), ordered_ids)

        assert any(message in e["message"] for e in exc_info.value.field_errors)

    def test_empty_reorder_of_no_policies(self):
        assert reorder([], []) == ()


class TestRestrictiveOrder:

    def test_deny_then_require_approval_then_allow(self):
        assert restrictive_order(_policies()) == [2, 3, 1]

    def test_ties_keep_lowest_id_first(self):
        policies = [
            Policy(id=9, name="late deny", action=PolicyAction.DENY),
            Policy(id=4, name="early deny", action=PolicyAction.DENY),
            Policy(id=5, name="allow", action=PolicyAction.ALLOW),
        ]

        assert restrictive_order(policies) == [4, 9, 5]


class TestNextPriority:

    def test_first_policy_gets_zero(self):
        assert next_priority([]) == 0

    def test_new_policy_goes_last(self):
        assert next_priority(_policies()) == 3

    def test_uses_max_not_count(self):
        policies = [Policy(id=1, name="a", priority=0), Policy(id=2, name="b", priority=7)]

        assert next_priority(policies) == 8
