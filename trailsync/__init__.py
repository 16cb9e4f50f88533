"""Initialize the Flask app and its extensions."""

import atexit
import json
import os

import firebase_admin
from firebase_admin import credentials
from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from .constants import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_DISTANCE_FILTER_METERS,
    DEFAULT_STALE_AFTER_SECONDS,
    DEFAULT_STORE_TIMEOUT_SECONDS,
)


def _init_firebase(app):
    """Initialize the Firebase Admin SDK from env, file or default credentials."""
    cred = None
    project_id = None

    # First, try to load from environment variable (for production)
    cred_json = os.environ.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            project_id = cred_info.get("project_id")
            cred = credentials.Certificate(cred_info)
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    # If env var fails or is not present, try loading from file (for local dev)
    if not cred:
        cred_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
        )
        if os.path.exists(cred_path):
            try:
                with open(cred_path, "r") as f:
                    cred_info = json.load(f)
                project_id = cred_info.get("project_id")
                cred = credentials.Certificate(cred_path)
            except (json.JSONDecodeError, ValueError) as e:
                app.logger.error(f"Error loading credentials from file: {e}")

    # If both methods fail, fallback to default credentials
    if not cred:
        try:
            cred = credentials.ApplicationDefault()
            project_id = os.environ.get("FIREBASE_PROJECT_ID")
        except Exception as e:
            app.logger.error(
                f"Could not find any valid credentials (env, file, or default): {e}"
            )

    if cred and not firebase_admin._apps:
        try:
            firebase_options = {"projectId": project_id} if project_id else None
            firebase_admin.initialize_app(cred, firebase_options)
        except ValueError:
            # This can happen if the app is already initialized, which is fine.
            app.logger.info("Firebase app already initialized.")


def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        LOCATION_DEBOUNCE_SECONDS=float(
            os.environ.get("LOCATION_DEBOUNCE_SECONDS") or DEFAULT_DEBOUNCE_SECONDS
        ),
        LOCATION_DISTANCE_FILTER_METERS=float(
            os.environ.get("LOCATION_DISTANCE_FILTER_METERS")
            or DEFAULT_DISTANCE_FILTER_METERS
        ),
        STORE_TIMEOUT_SECONDS=float(
            os.environ.get("STORE_TIMEOUT_SECONDS") or DEFAULT_STORE_TIMEOUT_SECONDS
        ),
        MEMBER_STALE_AFTER_SECONDS=int(
            os.environ.get("MEMBER_STALE_AFTER_SECONDS") or DEFAULT_STALE_AFTER_SECONDS
        ),
        GROUP_STORE=None,
    )

    if test_config:
        app.config.update(test_config)

    # Initialize Firebase Admin SDK only if not in testing mode
    if not app.config.get("TESTING"):
        _init_firebase(app)

    # Initialize extensions
    from .group.registry import EXTENSION_KEY, engines

    engines.init_app(app)
    atexit.register(app.extensions[EXTENSION_KEY].close_all)

    # Register blueprints
    from . import group as group_bp

    app.register_blueprint(group_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
