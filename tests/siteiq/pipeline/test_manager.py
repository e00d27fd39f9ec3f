"""Tests for siteiq.pipeline.manager: one attempt, retries, cancellation."""
import logging
import threading

import pytest
from unittest.mock import MagicMock, call

from siteiq.config import PipelineConfig
from siteiq.errors import ConfigurationError, RunCancelledError, RunFailedError, StoreError
from siteiq.pipeline.manager import ScoringPipeline
from siteiq.pipeline.schema import ResolvedSchema


SITES = [
    ('site-a', {'site_id': 'site-a', 'unemployment_rate': 25, 'labor_cost_index': 100}),
    ('site-b', {'site_id': 'site-b', 'unemployment_rate': 80, 'labor_cost_index': 40}),
    ('site-c', {'site_id': 'site-c', 'unemployment_rate': 50, 'labor_cost_index': 180}),
]


@pytest.fixture
def pipeline(run_store, record_store, config_store, pipeline_config):
    return ScoringPipeline(run_store, record_store, config_store, config=pipeline_config)


@pytest.fixture
def queued_run(make_run, make_input_set, seeded_configs):
    input_set = make_input_set(SITES)
    return make_run(input_set_id=input_set.id)


# ── Happy path ───────────────────────────────────────────────────────────────

class TestExecute:

    def test_scores_ranks_and_persists(self, pipeline, queued_run, run_store, record_store):
        ranked = pipeline.execute_with_retry(queued_run)

        assert [r.record_id for r in ranked] == ['site-b', 'site-c', 'site-a']
        assert [r.ranking for r in ranked] == [1, 2, 3]

        run = run_store.get_run(queued_run.tenant_id, queued_run.id)
        assert run.status == 'succeeded'
        assert run.scored_count == 3
        assert run.attempt_count == 1
        assert run.duration_ms is not None
        assert run.started_at is not None
        assert run.completed_at is not None
        assert run.last_error is None

        rows, total = record_store.get_results(run.id, page_size=10)
        assert total == 3
        assert [(r.ranking, r.record_id) for r in rows] == [(1, 'site-b'), (2, 'site-c'), (3, 'site-a')]
        scores = [r.final_score for r in rows]
        assert scores == sorted(scores, reverse=True)
        assert rows[0].extra['model_version'] == 'site-selection-iq-v1.0'

    def test_snapshot_records_resolved_schema(self, pipeline, queued_run, run_store, config_store):
        pipeline.execute(queued_run)

        run = run_store.get_run(queued_run.tenant_id, queued_run.id)
        assert run.schema_config_snapshot_id
        snapshot = config_store.get_snapshot(run.schema_config_snapshot_id)
        assert snapshot.run_id == run.id
        assert snapshot.input_set_id == run.input_set_id
        assert snapshot.snapshot_data['weights']['unemployment_rate'] == 2.0
        assert ResolvedSchema.from_dict(snapshot.snapshot_data).identifier_column == 'site_id'

    def test_snapshot_unaffected_by_later_config_changes(self, pipeline, queued_run, run_store,
                                                          config_store, global_config):
        pipeline.execute(queued_run)
        config_store.save_config(queued_run.tenant_id, '2.0', {'weights': {'unemployment_rate': 9.0}})

        run = run_store.get_run(queued_run.tenant_id, queued_run.id)
        snapshot = config_store.get_snapshot(run.schema_config_snapshot_id)
        assert snapshot.snapshot_data['weights']['unemployment_rate'] == 2.0

    def test_empty_input_set_succeeds(self, pipeline, make_run, make_input_set, seeded_configs,
                                      run_store, record_store):
        run = make_run(input_set_id=make_input_set([]).id)

        assert pipeline.execute(run) == []

        stored = run_store.get_run(run.tenant_id, run.id)
        assert stored.status == 'succeeded'
        assert stored.scored_count == 0
        assert record_store.get_results(run.id) == ([], 0)

    def test_bad_records_are_skipped(self, pipeline, make_run, make_input_set, seeded_configs, run_store):
        input_set = make_input_set(SITES + [
            ('garbled', 'not-json{'),
            ('empty', {}),
            ('site-a', {'site_id': 'site-a', 'unemployment_rate': 99}),
        ])
        run = make_run(input_set_id=input_set.id)

        ranked = pipeline.execute(run)

        assert sorted(r.record_id for r in ranked) == ['site-a', 'site-b', 'site-c']
        stored = run_store.get_run(run.tenant_id, run.id)
        assert stored.status == 'succeeded'
        assert stored.scored_count == 3

    def test_json_text_record_data_is_parsed(self, pipeline, make_run, make_input_set, seeded_configs):
        input_set = make_input_set([('site-x', '{"unemployment_rate": 40}')])
        ranked = pipeline.execute(make_run(input_set_id=input_set.id))
        assert [r.record_id for r in ranked] == ['site-x']

    def test_rerun_replaces_results(self, pipeline, queued_run, record_store):
        pipeline.execute(queued_run)
        pipeline.execute(queued_run)
        _, total = record_store.get_results(queued_run.id)
        assert total == 3

    def test_missing_global_config_marks_failed(self, pipeline, make_run, make_input_set, run_store):
        run = make_run(input_set_id=make_input_set(SITES).id)

        with pytest.raises(ConfigurationError):
            pipeline.execute(run)

        stored = run_store.get_run(run.tenant_id, run.id)
        assert stored.status == 'failed'
        assert stored.last_error == 'no active global schema configuration found'

    def test_logs_carry_run_context(self, pipeline, queued_run, caplog):
        caplog.set_level(logging.INFO, logger='pipeline.manager')
        pipeline.execute(queued_run)

        records = [r for r in caplog.records if r.name == 'pipeline.manager']
        steps = {getattr(r, 'step', None) for r in records}
        assert {'resolve_schema', 'create_snapshot', 'fetch_records', 'score_records',
                'bulk_insert_results', 'update_status_succeeded'} <= steps
        assert all(r.run_id == queued_run.id for r in records)
        assert all(r.tenant_id == queued_run.tenant_id for r in records)


class TestStepOrder:

    def _mocked(self):
        run_store, record_store, config_store = MagicMock(), MagicMock(), MagicMock()
        config_store.get_active_global_config.return_value = MagicMock(
            id='cfg-1', config={'identifier_column': 'site_id',
                                'fields': {'score': {'type': 'numeric', 'min': 0, 'max': 10, 'weight': 1}}})
        config_store.get_active_tenant_config.return_value = None
        config_store.create_snapshot.return_value = MagicMock(id='snap-1')
        record_store.get_input_records.return_value = [MagicMock(record_id='r1', data={'score': 5})]
        parent = MagicMock()
        parent.attach_mock(run_store, 'runs')
        parent.attach_mock(record_store, 'records')
        parent.attach_mock(config_store, 'configs')
        pipeline = ScoringPipeline(run_store, record_store, config_store, config=PipelineConfig(batch_size=50))
        return pipeline, parent

    def test_snapshot_precedes_scoring_and_insert_precedes_success(self):
        pipeline, parent = self._mocked()
        run = MagicMock(id='run-1', tenant_id='t-1', input_set_id='set-1')

        pipeline.execute(run)

        names = [c[0] for c in parent.mock_calls if not c[0].endswith('.return_value')]
        order = [n for n in names if n in (
            'runs.update_run_status', 'configs.create_snapshot', 'runs.attach_snapshot',
            'records.get_input_records', 'records.bulk_insert_results')]
        assert order == [
            'runs.update_run_status', 'configs.create_snapshot', 'runs.attach_snapshot',
            'records.get_input_records', 'records.bulk_insert_results', 'runs.update_run_status',
        ]
        assert parent.runs.update_run_status.call_args_list[0] == call('run-1', 'running')
        assert parent.runs.update_run_status.call_args_list[1].kwargs['scored_count'] == 1
        assert parent.records.bulk_insert_results.call_args.kwargs['batch_size'] == 50
        assert run.schema_config_snapshot_id == 'snap-1'

    def test_failed_status_update_does_not_mask_step_error(self):
        pipeline, parent = self._mocked()
        parent.records.get_input_records.side_effect = StoreError('connection reset')
        parent.runs.update_run_status.side_effect = [None, StoreError('still down')]

        with pytest.raises(StoreError, match='connection reset'):
            pipeline.execute(MagicMock(id='run-1', tenant_id='t-1', input_set_id='set-1'))


# ── Retry wrapper ────────────────────────────────────────────────────────────

class TestExecuteWithRetry:

    def test_transient_failure_is_retried(self, pipeline, queued_run, record_store, run_store, monkeypatch):
        real_insert = record_store.bulk_insert_results
        calls = []

        def flaky(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise StoreError('connection reset')
            return real_insert(*args, **kwargs)

        monkeypatch.setattr(record_store, 'bulk_insert_results', flaky)

        pipeline.execute_with_retry(queued_run)

        run = run_store.get_run(queued_run.tenant_id, queued_run.id)
        assert len(calls) == 2
        assert run.status == 'succeeded'
        assert run.attempt_count == 2
        assert run.scored_count == 3

    def test_exhausted_retries_mark_run_failed(self, pipeline, queued_run, record_store, run_store, monkeypatch):
        monkeypatch.setattr(record_store, 'get_input_records', MagicMock(side_effect=StoreError('db down')))

        with pytest.raises(RunFailedError) as exc_info:
            pipeline.execute_with_retry(queued_run)

        assert exc_info.value.attempts == 3
        run = run_store.get_run(queued_run.tenant_id, queued_run.id)
        assert run.status == 'failed'
        assert run.attempt_count == 3
        assert run.last_error == 'scoring pipeline failed after 3 attempts: db down'

    def test_configuration_error_is_not_retried(self, pipeline, make_run, make_input_set, run_store):
        run = make_run(input_set_id=make_input_set(SITES).id)

        with pytest.raises(RunFailedError) as exc_info:
            pipeline.execute_with_retry(run)

        assert exc_info.value.attempts == 1
        assert isinstance(exc_info.value.__cause__, ConfigurationError)
        stored = run_store.get_run(run.tenant_id, run.id)
        assert stored.attempt_count == 1
        assert stored.last_error.startswith('scoring pipeline failed after 1 attempts')

    def test_configuration_error_retried_when_enabled(self, run_store, record_store, config_store,
                                                     make_run, make_input_set):
        config = PipelineConfig(max_retries=2, base_backoff_ms=1, retry_configuration_errors=True)
        pipeline = ScoringPipeline(run_store, record_store, config_store, config=config)
        run = make_run(input_set_id=make_input_set(SITES).id)

        with pytest.raises(RunFailedError):
            pipeline.execute_with_retry(run)

        assert run_store.get_run(run.tenant_id, run.id).attempt_count == 3

    def test_increment_failure_is_only_logged(self, pipeline, queued_run, run_store, monkeypatch):
        monkeypatch.setattr(run_store, 'increment_attempt', MagicMock(side_effect=StoreError('nope')))
        pipeline.execute_with_retry(queued_run)
        assert run_store.get_run(queued_run.tenant_id, queued_run.id).status == 'succeeded'


class TestCancellation:

    def test_cancel_during_backoff_stops_without_final_failure(self, pipeline, queued_run, record_store,
                                                               run_store, monkeypatch):
        monkeypatch.setattr(record_store, 'get_input_records', MagicMock(side_effect=StoreError('db down')))
        cancel_event = MagicMock()
        cancel_event.is_set.return_value = False
        cancel_event.wait.return_value = True

        with pytest.raises(RunCancelledError):
            pipeline.execute_with_retry(queued_run, cancel_event=cancel_event)

        run = run_store.get_run(queued_run.tenant_id, queued_run.id)
        assert run.attempt_count == 1
        # status is whatever the last attempt left, not the composite failure
        assert run.status == 'failed'
        assert run.last_error == 'db down'

    def test_cancel_before_start_leaves_run_queued(self, pipeline, queued_run, run_store):
        cancel_event = threading.Event()
        cancel_event.set()

        with pytest.raises(RunCancelledError):
            pipeline.execute_with_retry(queued_run, cancel_event=cancel_event)

        run = run_store.get_run(queued_run.tenant_id, queued_run.id)
        assert run.status == 'queued'
        assert run.attempt_count == 0


class TestCalculateBackoff:

    def _pipeline(self, **config):
        return ScoringPipeline(MagicMock(), MagicMock(), MagicMock(), config=PipelineConfig(**config))

    def test_exponential_with_bounded_jitter(self):
        pipeline = self._pipeline(base_backoff_ms=1000)
        for attempt, base in [(0, 1.0), (1, 2.0), (3, 8.0)]:
            for _ in range(20):
                delay = pipeline.calculate_backoff(attempt)
                assert base <= delay <= base * 1.1

    def test_capped_at_five_minutes(self):
        pipeline = self._pipeline(base_backoff_ms=2000)
        assert pipeline.calculate_backoff(20) == 300.0
