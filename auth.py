"""
Session sign-in against the external identity provider.

The provider is asked who a bearer token belongs to; the matching local
User is created on first sign-in and remembered in the Flask session.
"""

import logging

import requests
from flask import current_app, session

from database import db
from models.user import User

logger = logging.getLogger(__name__)


class AuthError(RuntimeError):
    pass


def fetch_identity(token):
    """Return the provider's ``{"email": ..., "name": ...}`` for ``token``."""
    if not token:
        raise AuthError("Missing token")

    url = current_app.config["AUTH_PROVIDER_URL"]
    headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
    try:
        response = requests.get(url, headers=headers, timeout=5)
        response.raise_for_status()
        identity = response.json()
    except requests.RequestException as e:
        logger.warning("Identity provider rejected token: %s", e)
        raise AuthError("Could not verify identity") from e
    except ValueError as e:
        raise AuthError("Identity provider returned invalid JSON") from e

    if not identity.get("email"):
        raise AuthError("Identity has no email")
    return identity


def sign_in(token):
    identity = fetch_identity(token)
    email = identity["email"].strip().lower()

    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(email=email, name=identity.get("name"))
        db.session.add(user)
        db.session.commit()
        logger.info("Created user %s on first sign-in", user.id)

    session["user_id"] = user.id
    session.pop("show_login", None)
    logger.info("User %s signed in", user.id)
    return user


def current_viewer():
    """The signed-in User for this request, or None."""
    user_id = session.get("user_id")
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None:
        # stale session pointing at a deleted user
        session.pop("user_id", None)
    return user
