# habitrun/__init__.py

from flask import Flask, current_app
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy

from config import Config

db = SQLAlchemy()


class ChallengeServices:
    """Collaborators the routes use; swapped for fakes in tests."""

    def __init__(self, store, blob_store, vision, clock, policy, dashboard, submissions):
        self.store = store
        self.blob_store = blob_store
        self.vision = vision
        self.clock = clock
        self.policy = policy
        self.dashboard = dashboard
        self.submissions = submissions


def services() -> ChallengeServices:
    return current_app.extensions["habitrun"]


def create_app(config_object=Config, **overrides):
    """
    overrides: store, blob_store, vision, clock (any subset). Anything not
    given is built from config.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Init extensions
    db.init_app(app)

    # CORS: allow the web dashboard (and others) to call /api/*
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    from .errors import register_error_handlers

    register_error_handlers(app)

    # -----------------------------
    # Collaborators
    # -----------------------------
    from .blob_store import LocalBlobStore
    from .challenge_core import ChallengePolicy
    from .clock import SystemClock
    from .dashboard import DashboardComposer
    from .store import SqlAlchemyStore
    from .submission import SubmissionRegistry, SubmissionSession
    from .vision import VisionClient

    policy = ChallengePolicy.from_config(app.config)
    store = overrides.get("store")
    if store is None:
        store = SqlAlchemyStore()
    blob_store = overrides.get("blob_store")
    if blob_store is None:
        blob_store = LocalBlobStore(app.config["UPLOAD_FOLDER"])
    vision = overrides.get("vision")
    if vision is None:
        vision = VisionClient.from_config(app.config)
    clock = overrides.get("clock")
    if clock is None:
        clock = SystemClock(app.config["CHALLENGE_TIMEZONE"])

    def new_session(user_id=None):
        return SubmissionSession(store, vision, blob_store, policy, clock, user_id=user_id)

    app.extensions["habitrun"] = ChallengeServices(
        store=store,
        blob_store=blob_store,
        vision=vision,
        clock=clock,
        policy=policy,
        dashboard=DashboardComposer(
            store, policy, clock, recent_limit=app.config.get("RECENT_RECORDS_LIMIT", 8)
        ),
        submissions=SubmissionRegistry(
            new_session,
            clock,
            ttl_seconds=app.config.get("SUBMISSION_TTL_SECONDS", 30 * 60),
            max_sessions=app.config.get("MAX_OPEN_SUBMISSIONS", 100),
        ),
    )

    # -----------------------------
    # IMPORT BLUEPRINTS (all routes)
    # -----------------------------
    from .routes.users_routes import users_bp
    from .routes.submission_routes import submissions_bp
    from .routes.dashboard_routes import dashboard_bp
    from .routes.records_routes import records_bp, uploads_bp

    # -----------------------------
    # REGISTER BLUEPRINTS
    # -----------------------------
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(submissions_bp, url_prefix="/api/submissions")
    app.register_blueprint(dashboard_bp, url_prefix="/api/dashboard")
    app.register_blueprint(records_bp, url_prefix="/api/records")
    app.register_blueprint(uploads_bp, url_prefix="/uploads")

    @app.route("/api/health")
    def health():
        return {"status": "ok"}

    # -----------------------------
    # DB init
    # -----------------------------
    from .models import user, workout_record  # noqa: F401

    with app.app_context():
        db.create_all()

    return app
