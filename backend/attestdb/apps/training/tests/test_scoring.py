from __future__ import annotations

import pytest

from attestdb.apps.training import scoring


def test_mc_answer_is_exact_and_case_sensitive():
    assert scoring.score_mc_answer("b", "b") == 1.0
    assert scoring.score_mc_answer("B", "b") == 0.0
    assert scoring.score_mc_answer("", "") == 1.0


def test_module_score_is_mean_over_all_items():
    assert scoring.compute_module_score([1.0, 0.0], [1.0, 1.0]) == pytest.approx(0.75)
    assert scoring.compute_module_score([], [0.4]) == pytest.approx(0.4)
    assert scoring.compute_module_score([], []) is None


def test_module_score_depends_only_on_the_multiset_of_values():
    assert scoring.compute_module_score([0.6, 0.8], [1.0, 0.0]) == pytest.approx(0.6)
    assert scoring.compute_module_score([0.6], [0.8, 1.0, 0.0]) == pytest.approx(0.6)
    assert scoring.compute_module_score([], [0.6, 0.8, 1.0, 0.0]) == pytest.approx(0.6)


def test_aggregate_score():
    assert scoring.compute_aggregate_score([0.85, 0.6]) == pytest.approx(0.725)
    assert scoring.compute_aggregate_score([]) is None


def test_pass_threshold_is_inclusive():
    assert scoring.is_passing(0.7, 0.7)
    assert not scoring.is_passing(0.6999, 0.7)
    assert scoring.is_passing(0.725)


def test_weak_areas_are_strictly_below_threshold_in_order():
    modules = [("Phishing", 0.5), ("Passwords", 0.7), ("Devices", 0.69), ("Email", 0.9)]
    assert scoring.identify_weak_areas(modules, 0.7) == ["Phishing", "Devices"]
    assert scoring.identify_weak_areas([], 0.7) == []
