"""
Flask application factory.

Creates and configures the Flask app, registers the engine blueprints.
"""
import importlib
import os

from flask import Flask

MODEL_MODULES = (
    'expansion_engine.models.customer',
    'expansion_engine.models.telemetry',
    'expansion_engine.models.opportunity',
    'expansion_engine.models.external_event',
    'expansion_engine.models.signal',
    'expansion_engine.models.prompt',
    'expansion_engine.models.run',
    'expansion_engine.models.run_log',
    'expansion_engine.models.evaluation',
)


def import_models():
    """Import every model so Base.metadata knows about all tables."""
    for module in MODEL_MODULES:
        importlib.import_module(module)


def create_app():
    """Create and configure the Flask application."""
    from expansion_engine.logging_config import configure_logging

    app = Flask(__name__)
    configure_logging(app)
    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')

    from expansion_engine.routes.engine import bp as engine_bp
    from expansion_engine.routes.health import bp as health_bp

    app.register_blueprint(engine_bp)
    app.register_blueprint(health_bp)

    from expansion_engine.extensions import redis_client
    from expansion_engine.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Schema is managed by Alembic; this only registers the tables.
    import_models()

    return app
