from functools import wraps

import jwt
from flask import current_app, request
from datetime import datetime, timedelta, timezone

from errors import AuthenticationError


def _secret():
    return current_app.config["JWT_SECRET"]


def _algorithm():
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def extract_token():
    """Bearer header first, then ``token`` in the query string or JSON body."""
    header = request.headers.get("Authorization", "")
    if header:
        # accept both "Bearer <token>" and a raw token
        parts = header.split(" ", 1)
        return parts[1].strip() if len(parts) == 2 and parts[0].lower() == "bearer" else header.strip()
    token = request.args.get("token")
    if token:
        return token
    body = request.get_json(silent=True) or {}
    return body.get("token") if isinstance(body, dict) else None


def decode_teacher_token(token):
    """Return the teacher id carried by a token or raise AuthenticationError."""
    try:
        decoded = jwt.decode(token, _secret(), algorithms=[_algorithm()])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("invalid token")

    teacher_id = decoded.get("teacher_id", decoded.get("id"))
    try:
        return int(teacher_id)
    except (TypeError, ValueError):
        raise AuthenticationError("invalid token payload")


def issue_token(teacher_id, hours=12, secret=None, algorithm="HS256"):
    """Sign a teacher token; login itself lives in the identity service."""
    payload = {
        "teacher_id": int(teacher_id),
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    return jwt.encode(payload, secret or _secret(), algorithm=algorithm)


# -------------------------------------------------
# AUTH DECORATOR
# -------------------------------------------------
def require_auth(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        token = extract_token()
        if not token:
            raise AuthenticationError("missing token")
        request.teacher_id = decode_teacher_token(token)
        return f(*args, **kwargs)
    return wrapper
