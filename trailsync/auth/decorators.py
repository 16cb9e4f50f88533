"""Decorators for authenticated API routes."""

from functools import wraps

from firebase_admin import auth
from flask import current_app, g, jsonify, request


def login_required(f):
    """Reject the request unless it carries a valid Firebase ID token.

    The token is read from ``Authorization: Bearer <token>``; the verified
    user id is stored in ``g.member_id``.

    Usage:
    @login_required
    def protected_view():
        ...
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token:
            return (
                jsonify({"status": "error", "message": "Authentication required."}),
                401,
            )
        try:
            decoded_token = auth.verify_id_token(token)
        except auth.InvalidIdTokenError as e:
            current_app.logger.warning(f"Rejected ID token: {e}")
            return (
                jsonify({"status": "error", "message": "Invalid or expired token."}),
                401,
            )
        except auth.CertificateFetchError as e:
            current_app.logger.error(f"Could not fetch token signing certificates: {e}")
            return (
                jsonify(
                    {
                        "status": "error",
                        "message": "Could not verify the token right now.",
                    }
                ),
                503,
            )
        except ValueError as e:
            # The token is a non-empty string, so this is a missing Firebase app.
            current_app.logger.error(f"Firebase Admin is not initialized: {e}")
            return (
                jsonify(
                    {"status": "error", "message": "An unexpected error occurred."}
                ),
                500,
            )
        g.member_id = decoded_token["uid"]
        return f(*args, **kwargs)

    return decorated_function
