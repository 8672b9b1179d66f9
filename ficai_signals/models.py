from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, LargeBinary, String, Text
from sqlalchemy.sql import func

from ficai_signals.database import Base

SESSION_ID_BYTES = 16


class Account(Base):
    """
    Registered account.

    - email is unique and compared exactly as stored
    - password_hash is the Argon2 PHC string, never the password or pepper
    """
    __tablename__ = "account"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Account(id={self.id}, email={self.email})>"


class Session(Base):
    """
    Server-side session.

    The raw 16 random bytes are the primary key; the cookie carries them
    base64 encoded. An account may hold any number of sessions.
    """
    __tablename__ = "session"

    id = Column(LargeBinary(SESSION_ID_BYTES), primary_key=True)
    account_id = Column(Integer, ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Session(account_id={self.account_id})>"


class Signal(Base):
    """
    One account's current vote for a tag on a url. The composite key keeps
    at most one row per (account, url, tag); writes overwrite in place.
    """
    __tablename__ = "signal"

    account_id = Column(Integer, ForeignKey("account.id", ondelete="CASCADE"), primary_key=True)
    url = Column(Text, primary_key=True, index=True)
    tag = Column(Text, primary_key=True, index=True)
    signal = Column(Boolean, nullable=False)

    def __repr__(self):
        return f"<Signal(account_id={self.account_id}, url={self.url}, tag={self.tag}, signal={self.signal})>"
