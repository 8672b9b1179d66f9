import base64
import binascii
import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Tuple

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ficai_signals.config import Settings
from ficai_signals.database import is_unique_violation
from ficai_signals.errors import AccountAlreadyExists, BadRequest, Forbidden, InternalError
from ficai_signals.models import SESSION_ID_BYTES, Account, Session as SessionModel

log = logging.getLogger(__name__)

SESSION_ID_ATTEMPTS = 3

# URL-safe alphabet, no padding
SESSION_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]+")

# Argon2id tuned for interactive logins
# https://cheatsheetseries.owasp.org/cheatsheets/Password_Storage_Cheat_Sheet.html#argon2id
ph = PasswordHasher(
    time_cost=1,
    memory_cost=37 * 1024,
    parallelism=1,
    hash_len=32,
    type=Type.ID,
)


@dataclass(frozen=True)
class Identity:
    """Account behind a validated session cookie."""
    account_id: int
    email: str
    session_id: bytes


def _pepper(password: str, pepper: bytes) -> bytes:
    # The KDF only ever sees the peppered password; the pepper is not stored.
    return hmac.new(pepper, password.encode("utf-8"), hashlib.sha256).digest()


def hash_password(password: str, pepper: bytes) -> str:
    """
    Hash password using peppered Argon2id.

    Returns the PHC string, which embeds the algorithm, its parameters and
    a fresh random salt:
    $argon2id$v=19$m=37888,t=1,p=1$salt$hash
    """
    return ph.hash(_pepper(password, pepper))


def verify_password(password: str, pepper: bytes, password_hash: str) -> bool:
    """
    Verify password against a stored hash.

    Returns False on mismatch and on any other verification failure.
    A stored hash that cannot be parsed raises InternalError: that is a
    problem with our data, not with the caller's credentials.
    """
    try:
        return ph.verify(password_hash, _pepper(password, pepper))
    except VerifyMismatchError:
        return False
    except InvalidHashError as e:
        raise InternalError("stored password hash is malformed") from e
    except VerificationError as e:
        log.warning("password verification failed: %s", e)
        return False


def encode_session_id(session_id: bytes) -> str:
    return base64.urlsafe_b64encode(session_id).rstrip(b"=").decode("ascii")


def decode_session_id(token: str) -> bytes:
    """
    Decode a cookie value back to the raw session id.

    Raises BadRequest if the value is not unpadded URL-safe base64 of
    exactly SESSION_ID_BYTES bytes.
    """
    if not SESSION_TOKEN_RE.fullmatch(token):
        raise BadRequest("invalid auth cookie")
    try:
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
    except (binascii.Error, ValueError) as e:
        raise BadRequest("invalid auth cookie") from e
    if len(raw) != SESSION_ID_BYTES:
        raise BadRequest("invalid auth cookie")
    return raw


def generate_session_id() -> bytes:
    """
    Generate cryptographically secure session identifier.

    16 bytes (128 bits), per
    https://cheatsheetseries.owasp.org/cheatsheets/Session_Management_Cheat_Sheet.html#session-id-length
    """
    return secrets.token_bytes(SESSION_ID_BYTES)


def create_session(db: Session, account_id: int) -> str:
    """
    Create new session for an account and return the cookie token.

    A colliding id is regenerated, at most SESSION_ID_ATTEMPTS times in
    total; running out of attempts is an internal error.
    """
    for _ in range(SESSION_ID_ATTEMPTS):
        session_id = generate_session_id()
        try:
            db.execute(insert(SessionModel).values(id=session_id, account_id=account_id))
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if is_unique_violation(e):
                log.warning("session id collision for account %s, retrying", account_id)
                continue
            raise InternalError("failed to insert new session") from e
        return encode_session_id(session_id)

    raise InternalError(f"failed to generate a new session id in {SESSION_ID_ATTEMPTS} attempts")


def create_account(
    db: Session,
    settings: Settings,
    email: str,
    password: str,
    beta_key: str,
) -> Tuple[Account, str]:
    """
    Register a new account and open its first session.

    Error cases:
    - BadRequest: wrong beta key
    - AccountAlreadyExists: email already registered
    - InternalError: store failure
    """
    if not hmac.compare_digest(beta_key.encode("utf-8"), settings.beta_key.encode("utf-8")):
        raise BadRequest("invalid beta key")

    account = Account(email=email, password_hash=hash_password(password, settings.pepper))

    try:
        db.add(account)
        db.commit()
        db.refresh(account)
    except IntegrityError as e:
        db.rollback()
        if is_unique_violation(e):
            raise AccountAlreadyExists() from e
        raise InternalError("failed to insert new account") from e

    log.info("created account %s", account.id)
    return account, create_session(db, account.id)


def log_in(db: Session, settings: Settings, email: str, password: str) -> Tuple[Account, str]:
    """
    Check credentials and open a new session.

    Unknown email and wrong password are both Forbidden, so the response
    does not reveal which emails are registered.
    """
    account = db.query(Account).filter(Account.email == email).first()
    if not account:
        raise Forbidden("invalid credentials")

    if not verify_password(password, settings.pepper, account.password_hash):
        raise Forbidden("invalid credentials")

    return account, create_session(db, account.id)


def lookup_session(db: Session, token: str) -> Identity:
    """
    Resolve a cookie token to the account holding the session.
    """
    session_id = decode_session_id(token)

    row = db.query(
        SessionModel.account_id,
        Account.id.label("joined_id"),
        Account.email,
    ).outerjoin(
        Account, Account.id == SessionModel.account_id
    ).filter(
        SessionModel.id == session_id
    ).first()

    if row is None:
        raise Forbidden("invalid session")

    if row.joined_id is None:
        # Session outlived its account, never authenticate as nobody
        raise InternalError(f"session refers to missing account {row.account_id}")

    return Identity(account_id=row.joined_id, email=row.email, session_id=session_id)


def delete_session(db: Session, session_id: bytes) -> None:
    """
    Delete session (logout).

    The session was validated earlier in the same request, so finding
    nothing to delete means the account was removed concurrently. That
    race is reported, not retried.
    """
    result = db.query(SessionModel).filter(
        SessionModel.id == session_id
    ).delete()

    db.commit()
    if result == 0:
        raise InternalError("session disappeared before it could be deleted")
