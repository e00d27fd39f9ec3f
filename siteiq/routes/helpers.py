"""
Request helpers shared by the API blueprints.
"""
from flask import request, jsonify

TENANT_HEADER = 'X-Tenant-ID'
IDEMPOTENCY_HEADER = 'Idempotency-Key'


def current_tenant():
    """Tenant id from the request header, or None. Authentication happens upstream."""
    tenant_id = (request.headers.get(TENANT_HEADER) or '').strip()
    return tenant_id or None


def missing_tenant():
    return jsonify({'error': f'{TENANT_HEADER} header is required'}), 400


def idempotency_key(body=None):
    """Header key wins over a key supplied in the JSON body."""
    key = (request.headers.get(IDEMPOTENCY_HEADER) or '').strip()
    if not key and body:
        key = str(body.get('idempotency_key') or '').strip()
    return key or None
