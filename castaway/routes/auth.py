"""Authentication API: signup, login and a health probe.

Keeps the route layer thin; validation and token issuance live in
``castaway.services.auth_service``.
"""

import logging

from flask import Blueprint, jsonify, request

from castaway import db
from castaway.services import auth_service
from castaway.services.auth_service import AuthError

bp = Blueprint("auth", __name__)


def _credentials():
    data = request.get_json(silent=True) or {}
    return (
        str(data.get("handle") or ""),
        str(data.get("password") or ""),
        data.get("accessCode"),
        data.get("serverCode"),
    )


def _issue(user):
    token = auth_service.issue_token(user)
    return jsonify({"success": True, "token": token, "user": user.to_dict()})


@bp.route("/api/health", methods=["GET"])
def health():
    return jsonify({"success": True, "message": "Server is running!"})


@bp.route("/api/signup", methods=["POST"])
def signup():
    handle, password, access_code, server_code = _credentials()
    try:
        auth_service.check_access_code(access_code)
        user = auth_service.signup(handle, password, server_code)
    except AuthError as exc:
        return jsonify({"success": False, "error": exc.message}), exc.status
    except Exception:
        db.session.rollback()
        logging.exception("Signup failed for handle %r", handle)
        return jsonify({"success": False, "error": "Signup failed"}), 500
    return _issue(user)


@bp.route("/api/login", methods=["POST"])
def login():
    handle, password, access_code, server_code = _credentials()
    try:
        auth_service.check_access_code(access_code)
        user = auth_service.login(handle, password, server_code)
    except AuthError as exc:
        return jsonify({"success": False, "error": exc.message}), exc.status
    except Exception:
        db.session.rollback()
        logging.exception("Login failed for handle %r", handle)
        return jsonify({"success": False, "error": "Login failed"}), 500
    return _issue(user)
