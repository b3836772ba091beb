"""Tests for the reconciler and its pure set operations."""

from itertools import combinations
from unittest.mock import MagicMock, call

import pytest

from droplet_cluster.discovery.models import PeerId
from droplet_cluster.membership.reconciler import (
    Reconciler,
    apply_connect_result,
    apply_disconnect_result,
    diff,
)

A = PeerId("app@10.0.0.1")
B = PeerId("app@10.0.0.2")
C = PeerId("app@10.0.0.3")

UNIVERSE = (A, B, C)
ALL_SUBSETS = [frozenset(s) for n in range(len(UNIVERSE) + 1) for s in combinations(UNIVERSE, n)]


@pytest.fixture
def manager():
    mgr = MagicMock()
    mgr.connect.return_value = {}
    mgr.disconnect.return_value = {}
    return mgr


class TestDiff:
    @pytest.mark.parametrize("known", ALL_SUBSETS)
    @pytest.mark.parametrize("candidate", ALL_SUBSETS)
    def test_is_set_difference_and_disjoint(self, known, candidate):
        to_add, to_remove = diff(known, candidate)
        assert to_add == candidate - known
        assert to_remove == known - candidate
        assert not to_add & to_remove

    def test_identical_sets(self):
        assert diff({A, B}, {A, B}) == (frozenset(), frozenset())


class TestCorrections:
    def test_failed_disconnect_is_reinserted(self):
        assert apply_disconnect_result({B}, {A}, {A: "timeout"}) == {A, B}

    def test_failed_connect_is_removed(self):
        assert apply_connect_result({A, B}, {B}, {B: "refused"}) == {A}

    def test_failures_outside_batch_are_ignored(self):
        assert apply_disconnect_result({B}, {A}, {C: "x"}) == {B}
        assert apply_connect_result({A, B}, {B}, {A: "x"}) == {A, B}

    def test_no_failures_keeps_proposal(self):
        assert apply_disconnect_result({B}, {A}, {}) == {B}
        assert apply_connect_result({A, B}, {B}, {}) == {A, B}


class TestReconciler:
    def test_scenario_connect_all_from_empty(self, manager):
        result = Reconciler(manager).reconcile(frozenset(), {A, B})
        assert result.known == {A, B}
        manager.connect.assert_called_once_with([A, B])
        manager.disconnect.assert_not_called()

    def test_scenario_disconnect_succeeds(self, manager):
        result = Reconciler(manager).reconcile({A, B}, {B})
        assert result.known == {B}
        assert result.removed == {A}
        manager.disconnect.assert_called_once_with([A])
        manager.connect.assert_not_called()

    def test_scenario_disconnect_fails(self, manager):
        manager.disconnect.return_value = {A: "still busy"}
        result = Reconciler(manager).reconcile({A, B}, {B})
        assert result.known == {A, B}
        assert result.removed == frozenset()
        assert result.disconnect_failures == {A: "still busy"}

    def test_scenario_connect_fails(self, manager):
        manager.connect.return_value = {B: "refused"}
        result = Reconciler(manager).reconcile({A}, {A, B})
        assert result.known == {A}
        assert result.added == frozenset()
        assert result.connect_failures == {B: "refused"}

    def test_scenario_empty_candidates_disconnects_everything(self, manager):
        result = Reconciler(manager).reconcile({A}, set())
        assert result.known == frozenset()
        manager.disconnect.assert_called_once_with([A])

    def test_identical_sets_make_no_calls(self, manager):
        result = Reconciler(manager).reconcile({A, B}, {A, B})
        assert result.known == {A, B}
        assert not result.changed
        manager.connect.assert_not_called()
        manager.disconnect.assert_not_called()

    def test_disconnects_run_before_connects(self, manager):
        Reconciler(manager).reconcile({A}, {B})
        assert manager.mock_calls == [call.disconnect([A]), call.connect([B])]

    def test_mixed_failures(self, manager):
        manager.disconnect.return_value = {A: "busy"}
        manager.connect.return_value = {C: "refused"}
        result = Reconciler(manager).reconcile({A}, {B, C})
        assert result.known == {A, B}
        assert result.added == {B}

    def test_unsubmitted_failures_ignored(self, manager):
        manager.connect.return_value = {C: "who?"}
        result = Reconciler(manager).reconcile(frozenset(), {A})
        assert result.known == {A}
        assert result.connect_failures == {}

    def test_none_report_treated_as_success(self, manager):
        manager.connect.return_value = None
        result = Reconciler(manager).reconcile(frozenset(), {A})
        assert result.known == {A}

    @pytest.mark.parametrize("known", ALL_SUBSETS)
    @pytest.mark.parametrize("candidate", ALL_SUBSETS)
    def test_correction_law(self, manager, known, candidate):
        # every attempted peer fails
        manager.connect.side_effect = lambda peers: {p: "fail" for p in peers}
        manager.disconnect.side_effect = lambda peers: {p: "fail" for p in peers}
        result = Reconciler(manager).reconcile(known, candidate)
        assert result.known == known


class TestManagerExceptions:
    def test_connect_raising_keeps_completed_disconnects(self, manager):
        manager.connect.side_effect = ValueError("Expecting value")
        result = Reconciler(manager).reconcile({A}, {B})
        assert result.known == frozenset()
        assert result.removed == {A}
        assert set(result.connect_failures) == {B}

    def test_disconnect_raising_keeps_peers(self, manager):
        manager.disconnect.side_effect = RuntimeError("agent crashed")
        result = Reconciler(manager).reconcile({A, B}, {B, C})
        assert result.known == {A, B, C}
        assert set(result.disconnect_failures) == {A}
        manager.connect.assert_called_once_with([C])
