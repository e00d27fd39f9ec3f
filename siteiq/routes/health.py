"""
Health check.
"""
from flask import Blueprint, jsonify

from siteiq.extensions import get_services

bp = Blueprint('health', __name__)


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'active_runs': len(get_services().dispatcher.active_runs()),
    }), 200
