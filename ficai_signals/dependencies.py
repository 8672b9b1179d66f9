from typing import Optional

from fastapi import Cookie, Depends
from sqlalchemy.orm import Session

from ficai_signals.auth import Identity, lookup_session
from ficai_signals.config import Settings, get_settings
from ficai_signals.database import get_db
from ficai_signals.errors import Forbidden
from ficai_signals.fichub import FichubClient

SESSION_COOKIE_NAME = "FicAiSession"


def get_current_account(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: Session = Depends(get_db),
) -> Identity:
    """
    Require a valid session.

    Raises Forbidden without a cookie or with an unknown session, and
    BadRequest if the cookie is not a well-formed session token.
    """
    if session_token is None:
        raise Forbidden("not logged in")
    return lookup_session(db, session_token)


def get_optional_account(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: Session = Depends(get_db),
) -> Optional[Identity]:
    """
    Same checks as get_current_account, except that a missing cookie is
    an anonymous caller rather than an error.
    """
    if session_token is None:
        return None
    return lookup_session(db, session_token)


def get_fichub(settings: Settings = Depends(get_settings)):
    client = FichubClient(settings.fichub_url, settings.fichub_timeout)
    try:
        yield client
    finally:
        client.close()
