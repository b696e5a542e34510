"""Tests for the CSP plus genetic hybrid."""

from __future__ import annotations

import pytest

from timetabler.strategies import CancellationToken, FailureKind, GeneticSolver, HybridSolver, hybrid
from timetabler.strategies.hybrid import CSP_SHARE


@pytest.fixture
def genetic_runs(monkeypatch) -> list:
    """Record the settings and seed of every GA the hybrid creates."""
    runs = []

    class RecordingGeneticSolver(GeneticSolver):
        def __init__(self, problem, settings=None, cancel_token=None, initial_solution=None):
            runs.append((settings, initial_solution))
            super().__init__(problem, settings, cancel_token, initial_solution)

    monkeypatch.setattr(hybrid, "GeneticSolver", RecordingGeneticSolver)
    return runs


class TestHybridSolver:
    """Tests for staging and progress mapping."""

    def test_csp_seeds_the_genetic_stage(self, small_problem):
        result = HybridSolver(small_problem).solve()
        assert result.success
        assert result.metrics["algorithm"] == "Hybrid CSP + Genetic"
        assert result.metrics["csp_success"] is True
        assert result.metrics["csp_scheduled_sessions"] == 9
        assert result.metrics["csp_backtracks"] >= 0
        assert "fitness_history" in result.metrics

    def test_genetic_stage_runs_from_scratch_when_csp_fails(self, small_problem, small_settings, genetic_runs):
        settings = small_settings.model_copy(update={"hybrid_csp_steps": 1})
        result = HybridSolver(small_problem, settings).solve()
        assert result.metrics["csp_success"] is False
        assert result.metrics["csp_scheduled_sessions"] == 0
        assert result.success

        [(ga_settings, seed)] = genetic_runs
        assert seed is None
        assert ga_settings.max_generations == settings.max_generations
        assert ga_settings.population_size == settings.population_size

    def test_seeded_genetic_stage_is_reduced(self, small_problem, small_settings, genetic_runs):
        HybridSolver(small_problem, small_settings).solve()
        [(ga_settings, seed)] = genetic_runs
        assert len(seed) == 9
        assert ga_settings.max_generations == small_settings.max_generations // 2

    def test_genetic_stage_uses_half_the_generations(self, small_problem, small_settings):
        result = HybridSolver(small_problem).solve()
        assert result.metrics["generations"] <= small_settings.max_generations // 2

    def test_progress_runs_through_both_stages(self, small_problem):
        reports = []
        HybridSolver(small_problem).solve(progress=lambda percent, message, **extras: reports.append(percent))
        assert reports == sorted(reports)
        assert any(p <= CSP_SHARE for p in reports)
        assert any(p > CSP_SHARE for p in reports)
        assert reports[-1] == 100

    def test_cancel_during_csp_stage(self, small_problem):
        token = CancellationToken()
        result = HybridSolver(small_problem, cancel_token=token).solve(
            progress=lambda percent, message, **extras: token.cancel()
        )
        assert not result.success
        assert result.failure_kind == FailureKind.CANCELLED
