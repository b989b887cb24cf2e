"""
Error envelope shared by the quest and environment blueprints.
Every error body is {"error_code", "message", "details"?}; quest-domain exceptions carry their own
code and HTTP status, which quest_error_response() translates.
"""

import logging
from flask import jsonify
from typing import Dict, Any, Optional

ERROR_CODES = {
    # Client errors
    "BAD_REQUEST": "Invalid request body or parameters",
    "VALIDATION_ERROR": "Request validation failed",
    "NOT_FOUND": "Resource not found",
    "QUEST_NOT_FOUND": "Quest not found",
    "INVALID_QUEST_STATE": "The quest cannot perform this action in its current state",
    "RATE_LIMITED": "Too many requests",

    # Server errors
    "SERVER_ERROR": "Internal server error",
    "QUEST_GENERATION_FAILED": "Failed to generate quests",
}


def create_error_response(
    error_code: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    status_code: int = 500,
    extra: Optional[Dict[str, Any]] = None
) -> tuple:
    """
    Build a JSON error body and log it (WARNING for 4xx, ERROR for 5xx).

    Args:
        error_code: Key of ERROR_CODES; unknown codes are reported as SERVER_ERROR
        message: Overrides the code's default message
        details: Structured context, e.g. the offending objectiveIndex
        status_code: HTTP status code
        extra: Top-level fields merged into the body, e.g. {"quests": []} on generation failure

    Returns:
        Tuple of (JSON response, HTTP status code)
    """
    if error_code not in ERROR_CODES:
        logging.warning(f"Unknown error code used: {error_code}")
        error_code = "SERVER_ERROR"

    body = {"error_code": error_code, "message": message or ERROR_CODES[error_code]}
    if details:
        body["details"] = details
    if extra:
        body.update(extra)

    log = logging.error if status_code >= 500 else logging.warning
    log(f"API Error [{error_code}]: {body['message']} - Status: {status_code}")
    return jsonify(body), status_code


def quest_error_response(e) -> tuple:
    """Translates a QuestActionError (or subclass) into its error envelope."""
    return create_error_response(e.error_code, e.message, e.details, status_code=e.status_code)


def handle_exception(e: Exception, context: str = "API endpoint") -> tuple:
    error_type = type(e).__name__
    logging.error(f"Unexpected error in {context}: {error_type} - {e}", exc_info=True)
    return create_error_response(
        "SERVER_ERROR",
        "An unexpected error occurred",
        details={"error_type": error_type},
        status_code=500
    )


def validation_error(message: Optional[str] = None, details: Optional[Dict] = None) -> tuple:
    return create_error_response("VALIDATION_ERROR", message, details, status_code=400)


def bad_request_error(message: Optional[str] = None) -> tuple:
    return create_error_response("BAD_REQUEST", message, status_code=400)
