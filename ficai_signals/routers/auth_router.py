from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ficai_signals import auth
from ficai_signals.auth import Identity
from ficai_signals.config import Settings, get_settings
from ficai_signals.database import get_db
from ficai_signals.dependencies import SESSION_COOKIE_NAME, get_current_account
from ficai_signals.schemas import AccountResponse, CreateAccountRequest, EmptyResponse, LogInRequest

router = APIRouter(prefix="/v1", tags=["accounts", "sessions"])

# 20 years, effectively permanent
PERMANENT_COOKIE_AGE = 20 * 365 * 24 * 3600


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Register a new account and log it in.

    Error cases:
    - 400: Validation failed or wrong beta key
    - 409: Email already registered
    - 500: Database error
    """
    account, token = auth.create_account(
        db, settings, request.email, request.password, request.beta_key
    )
    _set_session_cookie(response, token, settings)
    return AccountResponse.model_validate(account)


@router.post("/sessions", response_model=AccountResponse)
def create_session(
    request: LogInRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Log in with email and password.

    A wrong email and a wrong password both give 403 with the same message.
    """
    account, token = auth.log_in(db, settings, request.email, request.password)
    _set_session_cookie(response, token, settings)
    return AccountResponse.model_validate(account)


@router.get("/sessions", response_model=AccountResponse)
def get_session(identity: Identity = Depends(get_current_account)):
    """
    Account behind the current session cookie.
    """
    return AccountResponse(id=identity.account_id, email=identity.email)


@router.delete("/sessions", response_model=EmptyResponse)
def delete_session(
    response: Response,
    identity: Identity = Depends(get_current_account),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Log out: delete the current session and clear the cookie.
    """
    auth.delete_session(db, identity.session_id)
    _clear_session_cookie(response, settings)
    return EmptyResponse()


def _set_session_cookie(response: Response, token: str, settings: Settings):
    """
    Set session cookie with security flags.

    The cookie only contains the session id (opaque token).
    All account data stays server-side.
    """
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=True,
        samesite=settings.cookie_samesite,
        max_age=PERMANENT_COOKIE_AGE,
        path="/",
        domain=settings.domain,
    )


def _clear_session_cookie(response: Response, settings: Settings):
    """
    Clear session cookie: same attributes, empty value, max_age=0.
    """
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value="",
        httponly=True,
        secure=True,
        samesite=settings.cookie_samesite,
        max_age=0,
        path="/",
        domain=settings.domain,
    )
