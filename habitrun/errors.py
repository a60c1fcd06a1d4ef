# habitrun/errors.py
from flask import jsonify


class ChallengeError(Exception):
    status_code = 500
    code = "challenge_error"

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self):
        body = dict(self.payload)
        body["message"] = self.message
        body["error"] = self.code
        return body


class InvalidInput(ChallengeError):
    status_code = 400
    code = "invalid_input"


class NotFoundError(ChallengeError):
    status_code = 404
    code = "not_found"


class SubmissionInProgress(ChallengeError):
    status_code = 409
    code = "submission_in_progress"


class InvalidSubmissionState(ChallengeError):
    status_code = 409
    code = "invalid_submission_state"


class ValidationRejected(ChallengeError):
    """Extracted numbers didn't meet the upload rules. Always retryable."""

    status_code = 422
    code = "validation_rejected"


class OracleFailure(ChallengeError):
    status_code = 502
    code = "analysis_failed"


class PersistenceFailure(ChallengeError):
    status_code = 503
    code = "persistence_failed"


def register_error_handlers(app):
    @app.errorhandler(ChallengeError)
    def challenge_error_handler(err):
        if err.status_code >= 500:
            app.logger.warning(f"[{err.code}] {err.message}")
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def not_found_handler(_err):
        return jsonify({"message": "resource not found", "error": "not_found"}), 404

    @app.errorhandler(413)
    def too_large_handler(_err):
        return jsonify({"message": "image is too large", "error": "payload_too_large"}), 413
