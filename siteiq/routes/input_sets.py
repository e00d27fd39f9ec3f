"""
Input set routes: ingest already-tokenized rows, fetch an input set.
"""
import logging
import uuid

from flask import Blueprint, request, jsonify

from siteiq.config import RESOURCE_INPUT_SET, VALIDATION_VALID
from siteiq.extensions import get_services
from siteiq.pipeline.schema import resolve_schema
from siteiq.routes.helpers import current_tenant, missing_tenant, idempotency_key
from siteiq.services.ingest import ingest_rows

logger = logging.getLogger('routes.input_sets')

bp = Blueprint('input_sets', __name__)


@bp.route('/api/input-sets', methods=['POST'])
def create_input_set():
    """Validate rows against the tenant's resolved schema and store them."""
    tenant_id = current_tenant()
    if not tenant_id:
        return missing_tenant()

    data = request.get_json(silent=True) or {}
    rows = data.get('rows')
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        return jsonify({'error': "'rows' must be a list of objects"}), 400

    services = get_services()
    input_set_id = str(uuid.uuid4())

    key = idempotency_key()
    if key:
        claim = services.idempotency_store.claim(tenant_id, key, RESOURCE_INPUT_SET, input_set_id)
        if claim.already_existed:
            existing = services.record_store.get_input_set(tenant_id, claim.resource_id)
            body = existing.to_dict() if existing else {'input_set_id': claim.resource_id}
            return jsonify(body), 409

    global_config = services.config_store.get_active_global_config()
    if global_config is None:
        return jsonify({'error': 'No active global schema configuration'}), 500
    tenant_config = services.config_store.get_active_tenant_config(tenant_id)
    schema = resolve_schema(global_config.config, tenant_config.config if tenant_config else None)

    input_set = ingest_rows(
        tenant_id, data.get('name', ''), rows, schema,
        record_store=services.record_store,
        input_set_id=input_set_id,
        idempotency_key=key,
        schema_version=tenant_config.version if tenant_config else global_config.version,
    )

    status = 201 if input_set.validation_status == VALIDATION_VALID else 422
    return jsonify(input_set.to_dict()), status


@bp.route('/api/input-sets/<input_set_id>')
def get_input_set(input_set_id):
    tenant_id = current_tenant()
    if not tenant_id:
        return missing_tenant()

    input_set = get_services().record_store.get_input_set(tenant_id, input_set_id)
    if input_set is None:
        return jsonify({'error': 'Input set not found'}), 404
    return jsonify(input_set.to_dict())
