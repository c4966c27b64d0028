"""
Health check — process liveness plus circuit breaker state.
"""
from flask import Blueprint, jsonify

from expansion_engine.services.circuit_breaker import get_all_breakers

bp = Blueprint('health', __name__)


@bp.route('/health')
def health_check():
    breakers = {name: cb.get_health() for name, cb in get_all_breakers().items()}
    degraded = [name for name, h in breakers.items() if h['state'] == 'open']
    return jsonify({
        'status': 'degraded' if degraded else 'healthy',
        'breakers': breakers,
    }), 200
