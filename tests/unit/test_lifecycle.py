"""Unit tests for the experiment lifecycle and monitoring."""

from unittest.mock import patch

import pytest

from content_experiments.core.exceptions import (
    ComputationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from content_experiments.core.types import (
    ExperimentStatus,
    MetricAggregate,
    Recommendation,
    StopReason,
    VariantResult,
)
from content_experiments.experiments import ExperimentManager


async def seed_results(repository, experiment_id, control=(1000, 100), treatment=(1000, 150)):
    """Store aggregated conversion results for both variants."""
    for variant_id, (participants, conversions), is_control in (
        ("control", control, True),
        ("treatment", treatment, False),
    ):
        await repository.save_variant_result(VariantResult(
            experiment_id=experiment_id,
            variant_id=variant_id,
            is_control=is_control,
            participants=participants,
            metrics={"conversion_rate": MetricAggregate(count=conversions, mean=1.0)},
        ))


class TestCreateAndStart:
    """Test creating and starting experiments."""

    @pytest.mark.asyncio
    async def test_create_experiment(self, manager, sample_config, clock):
        created = await manager.create_experiment(sample_config)

        experiment = await manager.get_experiment(created.experiment_id)
        assert created.status == ExperimentStatus.DRAFT
        assert experiment.status == ExperimentStatus.DRAFT
        assert experiment.created_at == clock.now()
        assert experiment.content_id == "post-42"
        assert [v.traffic_allocation for v in experiment.variants] == [50.0, 50.0]

    @pytest.mark.asyncio
    async def test_create_invalid_experiment(self, manager, sample_config):
        config = sample_config.model_copy(update={"traffic_split": [70.0, 20.0]})

        with pytest.raises(ValidationError) as exc_info:
            await manager.create_experiment(config)

        assert exc_info.value.violations == ["Traffic split must sum to 100% (got 90%)"]
        assert await manager.list_experiments() == []

    @pytest.mark.asyncio
    async def test_create_from_dict_applies_defaults(self, manager):
        created = await manager.create_experiment({
            "name": "From dict",
            "variants": [
                {"id": "a", "name": "A", "is_control": True},
                {"id": "b", "name": "B"},
            ],
            "traffic_split": [50, 50],
            "success_metrics": [{"name": "conversion_rate"}],
        })

        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.minimum_sample_size == 1000
        assert experiment.duration_days == 14
        assert experiment.significance_level == 0.05

    @pytest.mark.asyncio
    async def test_create_from_malformed_dict(self, manager):
        with pytest.raises(ValidationError) as exc_info:
            await manager.create_experiment({"name": "Broken", "variants": "not-a-list"})

        assert exc_info.value.violations[0].startswith("variants")

    @pytest.mark.asyncio
    async def test_start_experiment(self, manager, sample_config, clock):
        created = await manager.create_experiment(sample_config)

        await manager.start_experiment(created.experiment_id)

        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.status == ExperimentStatus.RUNNING
        assert experiment.start_date == clock.now()
        assert (experiment.end_date - experiment.start_date).days == 14

        results = await manager.repository.get_variant_results(created.experiment_id)
        assert [r.variant_id for r in results] == ["control", "treatment"]
        assert all(r.participants == 0 for r in results)
        assert results[0].is_control is True

    @pytest.mark.asyncio
    async def test_auto_start(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)

        assert created.status == ExperimentStatus.RUNNING
        assert (await manager.get_experiment(created.experiment_id)).is_running

    @pytest.mark.asyncio
    async def test_start_twice(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)

        with pytest.raises(InvalidStateError):
            await manager.start_experiment(created.experiment_id)

    @pytest.mark.asyncio
    async def test_start_unknown(self, manager):
        with pytest.raises(NotFoundError):
            await manager.start_experiment("missing")

    @pytest.mark.asyncio
    async def test_transitions_are_audited(self, manager, sample_config):
        with patch("content_experiments.experiments.lifecycle.audit_log") as mock_audit:
            created = await manager.create_experiment(sample_config, auto_start=True)
            await manager.stop_experiment(created.experiment_id)

        actions = [call.kwargs["action"] for call in mock_audit.call_args_list]
        assert actions == ["experiment.create", "experiment.start", "experiment.stop"]
        assert mock_audit.call_args_list[0].kwargs["resource_id"] == created.experiment_id


class TestStopAndResults:
    """Test stopping experiments and reading results."""

    @pytest.mark.asyncio
    async def test_stop_experiment(self, manager, sample_config, clock):
        created = await manager.create_experiment(sample_config, auto_start=True)
        clock.advance(days=2)

        analysis = await manager.stop_experiment(created.experiment_id)

        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.status == ExperimentStatus.STOPPED
        assert experiment.stopped_at == clock.now()
        assert experiment.stop_reason == StopReason.MANUAL.value
        assert analysis.status == ExperimentStatus.STOPPED
        assert analysis.recommendation == Recommendation.INCONCLUSIVE
        assert analysis.winner is None

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, manager, sample_config, clock):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await manager.stop_experiment(created.experiment_id)
        stopped_at = clock.now()
        clock.advance(hours=3)

        analysis = await manager.stop_experiment(created.experiment_id, StopReason.DURATION_COMPLETE)

        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.stopped_at == stopped_at
        assert experiment.stop_reason == StopReason.MANUAL.value
        assert analysis.stop_reason == StopReason.MANUAL.value

    @pytest.mark.asyncio
    async def test_stop_draft(self, manager, sample_config):
        created = await manager.create_experiment(sample_config)

        with pytest.raises(InvalidStateError):
            await manager.stop_experiment(created.experiment_id)

    @pytest.mark.asyncio
    async def test_stop_persists_winner(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await seed_results(manager.repository, created.experiment_id)

        analysis = await manager.stop_experiment(created.experiment_id)

        assert analysis.recommendation == Recommendation.IMPLEMENT_WINNER
        assert analysis.winner == "treatment"
        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.winner_variant_id == "treatment"
        assert experiment.recommendation == Recommendation.IMPLEMENT_WINNER
        stored = await manager.repository.get_variant_result(created.experiment_id, "treatment")
        assert stored.is_winner is True
        assert stored.is_significant is True
        assert stored.participants == 1000

    @pytest.mark.asyncio
    async def test_finished_experiments_release_their_locks(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await manager.record_conversion(created.experiment_id, "control", "visitor-1", "conversion_rate")
        assert len(manager.recorder._result_locks) == 1

        await manager.stop_experiment(created.experiment_id)
        assert len(manager.recorder._result_locks) == 0

        await manager.complete_experiment(created.experiment_id)
        assert len(manager.lifecycle._locks) == 0

    @pytest.mark.asyncio
    async def test_complete_experiment(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)

        with pytest.raises(InvalidStateError):
            await manager.complete_experiment(created.experiment_id)

        await manager.stop_experiment(created.experiment_id)
        experiment = await manager.complete_experiment(created.experiment_id)

        assert experiment.status == ExperimentStatus.COMPLETED
        analysis = await manager.stop_experiment(created.experiment_id)
        assert analysis.status == ExperimentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_results_of_draft(self, manager, sample_config):
        created = await manager.create_experiment(sample_config)

        with pytest.raises(ComputationError):
            await manager.get_results(created.experiment_id)

    @pytest.mark.asyncio
    async def test_get_results(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await seed_results(manager.repository, created.experiment_id)

        analysis = await manager.get_results(created.experiment_id)

        assert analysis.total_participants == 2000
        assert analysis.primary_metric == "conversion_rate"
        assert analysis.statistical_significance is True
        assert analysis.confidence > 99.0
        assert analysis.max_improvement == pytest.approx(50.0)
        assert analysis.winner == "treatment"
        assert analysis.get_variant_result("treatment").is_winner is True
        assert analysis.get_variant_result("control").value == pytest.approx(0.10)
        assert analysis.next_steps[0] == "Implement the winning variant"

        stored = await manager.repository.get_variant_result(created.experiment_id, "treatment")
        assert stored.is_winner is False

    @pytest.mark.asyncio
    async def test_optimization_recommendations(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await seed_results(manager.repository, created.experiment_id, treatment=(1000, 60))

        items = await manager.generate_optimization_recommendations(created.experiment_id)

        assert [i.type.value for i in items] == ["avoid_pattern"]
        assert items[0].variant_id == "treatment"

    @pytest.mark.asyncio
    async def test_list_experiments_by_status(self, manager, sample_config):
        running = await manager.create_experiment(sample_config, auto_start=True)
        await manager.create_experiment(sample_config)

        listed = await manager.list_experiments(status=ExperimentStatus.RUNNING)

        assert [e.id for e in listed] == [running.experiment_id]
        assert len(await manager.list_experiments()) == 2

    @pytest.mark.asyncio
    async def test_generate_multivariate_test(self, manager):
        created = await manager.generate_multivariate_test(
            "Hero block",
            [{"name": "headline", "values": ["A", "B"]}, {"name": "image", "values": ["cat", "dog", "owl"]}],
            {"success_metrics": [{"name": "click_through_rate", "type": "click_through_rate"}],
             "minimum_sample_size": 200},
        )

        experiment = await manager.get_experiment(created.experiment_id)
        assert len(experiment.variants) == 6
        assert experiment.minimum_sample_size == 200
        assert experiment.get_control_variant().id == "variant_0"

    @pytest.mark.asyncio
    async def test_multivariate_test_uses_configured_defaults(self, manager):
        manager.config.set("experiment.default_minimum_sample_size", 500)
        manager.config.set("experiment.default_duration_days", 30)

        created = await manager.generate_multivariate_test(
            "Hero block", [{"name": "headline", "values": ["A", "B"]}]
        )

        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.minimum_sample_size == 500
        assert experiment.duration_days == 30
        assert [m.name for m in experiment.success_metrics] == ["conversion_rate"]


class TestMonitoring:
    """Test the automatic stop rules applied by the monitor."""

    @pytest.mark.asyncio
    async def test_duration_complete(self, manager, sample_config, clock):
        created = await manager.create_experiment(sample_config, auto_start=True)

        clock.advance(days=14)
        summary = await manager.run_monitor_tick()
        assert summary["stopped"] == {}

        clock.advance(seconds=1)
        summary = await manager.run_monitor_tick()

        assert summary["stopped"] == {created.experiment_id: "duration_complete"}
        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.status == ExperimentStatus.STOPPED
        assert experiment.stop_reason == "duration_complete"

    @pytest.mark.asyncio
    async def test_monitor_checks_every_page(self, manager, sample_config, clock):
        manager.lifecycle.monitor_page_size = 2
        created = [await manager.create_experiment(sample_config, auto_start=True) for _ in range(5)]

        clock.advance(days=15)
        summary = await manager.run_monitor_tick()

        assert summary["checked"] == 5
        assert set(summary["stopped"]) == {c.experiment_id for c in created}
        assert await manager.list_experiments(status=ExperimentStatus.RUNNING) == []

    @pytest.mark.asyncio
    async def test_early_stop_on_significance(self, manager, sample_config, metrics):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await seed_results(manager.repository, created.experiment_id)

        summary = await manager.run_monitor_tick()

        assert summary["stopped"] == {created.experiment_id: "early_stopping_significance"}
        experiment = await manager.get_experiment(created.experiment_id)
        assert experiment.stop_reason == "early_stopping_significance"
        assert experiment.winner_variant_id == "treatment"
        assert metrics.get_counter_value("experiments.auto_stopped") == 1

    @pytest.mark.asyncio
    async def test_no_early_stop_below_minimum_sample(self, manager, sample_config):
        config = sample_config.model_copy(update={"minimum_sample_size": 2000})
        created = await manager.create_experiment(config, auto_start=True)
        await seed_results(manager.repository, created.experiment_id)

        summary = await manager.run_monitor_tick()

        assert summary["stopped"] == {}
        assert (await manager.get_experiment(created.experiment_id)).is_running
        stored = await manager.repository.get_variant_result(created.experiment_id, "treatment")
        assert stored.is_significant is True

    @pytest.mark.asyncio
    async def test_no_early_stop_when_disabled(self, mock_config, memory_repository, clock, sample_config):
        mock_config.set("scheduler.early_stopping_enabled", False)
        manager = ExperimentManager(config=mock_config, repository=memory_repository, clock=clock)
        await manager.initialize()
        try:
            created = await manager.create_experiment(sample_config, auto_start=True)
            await seed_results(manager.repository, created.experiment_id)

            summary = await manager.run_monitor_tick()
        finally:
            await manager.shutdown()

        assert summary["stopped"] == {}

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, manager, sample_config, clock, metrics):
        bad = await manager.create_experiment(sample_config, auto_start=True)
        good = await manager.create_experiment(sample_config, auto_start=True)
        clock.advance(days=15)

        original = manager.lifecycle.check_experiment

        async def flaky(experiment):
            if experiment.id == bad.experiment_id:
                raise RuntimeError("repository unavailable")
            return await original(experiment)

        with patch.object(manager.lifecycle, "check_experiment", side_effect=flaky):
            summary = await manager.run_monitor_tick()

        assert summary["checked"] == 2
        assert summary["errors"] == 1
        assert summary["stopped"] == {good.experiment_id: "duration_complete"}
        assert metrics.get_counter_value("monitor.errors") == 1
        assert (await manager.get_experiment(bad.experiment_id)).is_running

    @pytest.mark.asyncio
    async def test_stopped_experiments_are_not_checked(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await manager.stop_experiment(created.experiment_id)

        summary = await manager.run_monitor_tick()

        assert summary["checked"] == 0


class TestManagerStats:
    """Test the manager's operational summary."""

    @pytest.mark.asyncio
    async def test_get_stats(self, manager, sample_config):
        created = await manager.create_experiment(sample_config, auto_start=True)
        await manager.create_experiment(sample_config)
        await manager.assign_visitor(created.experiment_id, "visitor-1")
        await manager.record_conversion(created.experiment_id, "control", "visitor-2", "newsletter_signup")
        await manager.run_monitor_tick()

        stats = await manager.get_stats()

        assert stats["repository"]["total_experiments"] == 2
        assert stats["repository"]["status_counts"] == {"running": 1, "draft": 1}
        assert stats["metrics"]["counters"]["assignments.created"] == 1
        assert stats["ignored_conversions"] == {"untracked_metric": 1}
        assert stats["monitor"]["running"] is False
