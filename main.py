# FILE: main.py

import os
import json
import logging
from flask import Flask, jsonify
from dotenv import load_dotenv
from pydantic import ValidationError
from logging_config import setup_logging
from extensions import limiter

# --- SETUP & CONFIG ---
# Load environment variables before any module reads them.
load_dotenv()
setup_logging()


def create_app(quest_service=None, config=None):
    """
    Builds the Flask app.

    Args:
        quest_service: Optional QuestService; when omitted the production one is built on first request.
        config: Optional overrides for app.config (e.g. RATELIMIT_ENABLED=False in tests).
    """
    app = Flask(__name__)
    app.config['RATELIMIT_STORAGE_URI'] = os.environ.get('REDIS_URL', 'memory://')
    if config:
        app.config.update(config)

    # --- Initialize Extensions ---
    limiter.init_app(app)
    if quest_service is not None:
        app.extensions['quest_service'] = quest_service

    # --- Import and Register Blueprints ---
    from api.quests import quests_bp
    from api.environment import environment_bp

    app.register_blueprint(quests_bp, url_prefix='/quests', strict_slashes=False)
    app.register_blueprint(environment_bp, url_prefix='/environment', strict_slashes=False)

    # --- Global Error Handlers ---
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error_code": "BAD_REQUEST", "details": json.loads(e.json(include_url=False))}), 400

    @app.errorhandler(404)
    def resource_not_found(e):
        return jsonify(error_code="NOT_FOUND", message="The requested resource was not found."), 404

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify(error_code="RATE_LIMITED", message="Too many requests. Please slow down."), 429

    @app.errorhandler(500)
    def internal_server_error(e):
        logging.critical(f"An unhandled exception occurred: {e}", exc_info=True)
        return jsonify(error_code="INTERNAL_SERVER_ERROR", message="An unexpected error occurred on the server."), 500

    return app


app = create_app()
