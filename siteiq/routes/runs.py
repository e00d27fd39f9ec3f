"""
Run routes: start a scoring run, poll it, page through and explain results.
"""
import logging
import uuid

from flask import Blueprint, request, jsonify

from siteiq.config import (
    DEFAULT_MODEL_VERSION, RESOURCE_SCORING_RUN, RESULTS_MAX_PAGE_SIZE,
    RESULTS_PAGE_SIZE, STATUS_QUEUED, VALIDATION_VALID,
)
from siteiq.extensions import get_services
from siteiq.models.scoring_run import ScoringRun
from siteiq.pipeline.schema import ResolvedSchema
from siteiq.pipeline.scoring import Explanation
from siteiq.routes.helpers import current_tenant, missing_tenant, idempotency_key

logger = logging.getLogger('routes.runs')

bp = Blueprint('runs', __name__)


def _model_version(scoring_config):
    version = scoring_config.get('model_version')
    if not version or version == 'latest':
        return DEFAULT_MODEL_VERSION
    return str(version)


# ── Run lifecycle ────────────────────────────────────────────────────────────

@bp.route('/api/input-sets/<input_set_id>/runs', methods=['POST'])
def create_run(input_set_id):
    """Create a queued run for an input set and hand it to the dispatcher."""
    tenant_id = current_tenant()
    if not tenant_id:
        return missing_tenant()

    services = get_services()
    input_set = services.record_store.get_input_set(tenant_id, input_set_id)
    if input_set is None:
        return jsonify({'error': 'Input set not found'}), 404
    if input_set.validation_status != VALIDATION_VALID:
        return jsonify({'error': f'Input set is {input_set.validation_status}; only valid input sets can be scored'}), 422

    data = request.get_json(silent=True) or {}
    scoring_config = data.get('scoring_config') or {}
    if not isinstance(scoring_config, dict):
        return jsonify({'error': "'scoring_config' must be an object"}), 400

    run_id = str(uuid.uuid4())
    key = idempotency_key(data)
    if key:
        claim = services.idempotency_store.claim(tenant_id, key, RESOURCE_SCORING_RUN, run_id)
        if claim.already_existed:
            existing = services.run_store.get_run(tenant_id, claim.resource_id)
            body = existing.to_dict() if existing else {'run_id': claim.resource_id}
            return jsonify(body), 409

    run = ScoringRun(
        id=run_id,
        tenant_id=tenant_id,
        input_set_id=input_set.id,
        status=STATUS_QUEUED,
        model_version=_model_version(scoring_config),
        scoring_config=scoring_config,
        row_count=input_set.row_count,
        attempt_count=0,
        idempotency_key=key,
    )
    run = services.run_store.create_run(run)
    services.dispatcher.submit(run)

    return jsonify(run.to_dict()), 202


@bp.route('/api/runs/<run_id>')
def get_run(run_id):
    """Get a single run's status."""
    tenant_id = current_tenant()
    if not tenant_id:
        return missing_tenant()

    run = get_services().run_store.get_run(tenant_id, run_id)
    if run is None:
        return jsonify({'error': 'Run not found'}), 404
    return jsonify(run.to_dict())


@bp.route('/api/runs/<run_id>/cancel', methods=['POST'])
def cancel_run(run_id):
    """Stop retrying a run. Its status is left as last recorded."""
    tenant_id = current_tenant()
    if not tenant_id:
        return missing_tenant()

    services = get_services()
    run = services.run_store.get_run(tenant_id, run_id)
    if run is None:
        return jsonify({'error': 'Run not found'}), 404

    requested = services.dispatcher.cancel(run_id)
    return jsonify({'run_id': run_id, 'status': run.status, 'cancel_requested': requested}), 202


# ── Results ──────────────────────────────────────────────────────────────────

@bp.route('/api/runs/<run_id>/results')
def list_results(run_id):
    """Ranked results for a run, paginated."""
    tenant_id = current_tenant()
    if not tenant_id:
        return missing_tenant()

    services = get_services()
    run = services.run_store.get_run(tenant_id, run_id)
    if run is None:
        return jsonify({'error': 'Run not found'}), 404

    page = request.args.get('page', 1, type=int)
    page_size = request.args.get('page_size', RESULTS_PAGE_SIZE, type=int)
    min_score = request.args.get('min_score', None, type=float)
    if page < 1 or page_size < 1:
        return jsonify({'error': 'page and page_size must be positive'}), 400
    page_size = min(page_size, RESULTS_MAX_PAGE_SIZE)

    rows, total = services.record_store.get_results(run_id, page=page, page_size=page_size,
                                                    min_score=min_score)
    return jsonify({
        'run_id': run_id,
        'status': run.status,
        'model_version': run.model_version,
        'page': page,
        'page_size': page_size,
        'total': total,
        'results': [row.to_dict() for row in rows],
    })


@bp.route('/api/runs/<run_id>/results/<record_id>/explain')
def explain_result(run_id, record_id):
    """Full evidence trail for one record: factors, summary, weights the run used."""
    tenant_id = current_tenant()
    if not tenant_id:
        return missing_tenant()

    services = get_services()
    run = services.run_store.get_run(tenant_id, run_id)
    if run is None:
        return jsonify({'error': 'Run not found'}), 404

    result = services.record_store.get_result(run_id, record_id)
    if result is None:
        return jsonify({'error': 'Result not found'}), 404

    weights_applied = {}
    if run.schema_config_snapshot_id:
        snapshot = services.config_store.get_snapshot(run.schema_config_snapshot_id)
        if snapshot is not None:
            weights_applied = dict(ResolvedSchema.from_dict(snapshot.snapshot_data or {}).weights)

    explanation = Explanation.from_dict(result.explanation)
    return jsonify({
        'run_id': run_id,
        'record_id': result.record_id,
        'rank': result.ranking,
        'final_score': result.final_score,
        'raw_score': result.raw_score,
        'model_version': (result.extra or {}).get('model_version', run.model_version),
        'scored_at': result.created_at.isoformat() if result.created_at else None,
        'factors': [f.to_dict() for f in explanation.factors],
        'summary': explanation.summary,
        'weights_applied': weights_applied,
    })
