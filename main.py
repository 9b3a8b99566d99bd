from flask import Flask, jsonify
from flask_cors import CORS

from config import Config
from db import SessionLocal, init_db
from errors import QuizError, StoreFailure
from live import LiveState
from logging_config import configure_logging
from routes.sessions import sessions_bp
from routes.student import student_bp
from routes.teacher import teacher_bp
from sockets import socketio


def create_app(overrides=None):
    # -------------------------------------------------
    # APP INITIALIZATION
    # -------------------------------------------------
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logger = configure_logging(app.config["LOG_LEVEL"])

    # -------------------------------------------------
    # CORS CONFIGURATION
    # -------------------------------------------------
    CORS(
        app,
        resources={
            r"/*": {
                "origins": app.config["ALLOWED_ORIGINS"],
                "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
                "allow_headers": ["Content-Type", "Authorization", "X-Update-Secret"],
                "supports_credentials": True,
            }
        },
    )

    # -------------------------------------------------
    # SOCKET.IO + LIVE STATE
    # -------------------------------------------------
    socketio.init_app(app, cors_allowed_origins="*")
    app.extensions["live"] = LiveState(
        SessionLocal,
        presence_timeout=app.config["PRESENCE_TIMEOUT_SECONDS"],
        recent_limit=app.config["RECENT_ANSWERS_LIMIT"],
    )

    # -------------------------------------------------
    # DATABASE SETUP
    # -------------------------------------------------
    init_db()

    # -------------------------------------------------
    # BLUEPRINT REGISTRATION
    # -------------------------------------------------
    app.register_blueprint(sessions_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(teacher_bp)

    # -------------------------------------------------
    # ERROR HANDLING
    # -------------------------------------------------
    @app.errorhandler(StoreFailure)
    def handle_store_failure(e):
        logger.exception("store failure: %s", e.message)
        return jsonify({"success": False, "error": StoreFailure.public_message}), 500

    @app.errorhandler(QuizError)
    def handle_quiz_error(e):
        return jsonify({"success": False, "error": e.message}), e.status_code

    # -------------------------------------------------
    # ROOT + HEALTH
    # -------------------------------------------------
    @app.get("/")
    def home():
        return jsonify({
            "message": "Klasquiz backend running with Flask + Socket.IO",
            "environment": app.config["FLASK_ENV"],
            "allowed_origins": app.config["ALLOWED_ORIGINS"],
        }), 200

    @app.get("/health")
    def health():
        live = app.extensions["live"]
        return jsonify({
            "status": "healthy",
            "live_sessions": len(live.hub.session_ids()),
            "allowed_origins": app.config["ALLOWED_ORIGINS"],
        }), 200

    return app


# -------------------------------------------------
# MAIN ENTRY POINT
# -------------------------------------------------
if __name__ == "__main__":
    app = create_app()
    logger = configure_logging(app.config["LOG_LEVEL"])
    logger.info("Klasquiz backend starting (%s) on port %s", app.config["FLASK_ENV"], app.config["PORT"])
    logger.info("Allowed frontend origins: %s", app.config["ALLOWED_ORIGINS"])

    # Werkzeug is allowed for single-process hosting
    socketio.run(app, host="0.0.0.0", port=app.config["PORT"], allow_unsafe_werkzeug=True)
