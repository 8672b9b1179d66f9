import base64
import binascii
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application configuration loaded from FICAI_* environment variables.

    Settings are frozen: the instance built at startup is shared by every
    request and never mutated afterwards.
    """
    environment: str = "development"
    debug: bool = False

    host: str = "0.0.0.0"
    port: int = 8080

    database_url: str = "sqlite:///./ficai.db"

    # Secret mixed into every password hash, unpadded base64.
    # Lives only here, never next to the hashes in the database.
    pwd_pepper: str

    # Invitation key required to register during the beta
    beta_key: str

    # Session cookie scope
    domain: str
    cookie_samesite: str = "lax"

    # Metadata lookup service
    fichub_url: str = "https://fichub.net"
    fichub_timeout: float = 10.0

    log_level: str = "INFO"
    log_json: bool = False

    class Config:
        env_prefix = "FICAI_"
        env_file = ".env"
        case_sensitive = False
        frozen = True

    @field_validator("pwd_pepper")
    @classmethod
    def validate_pepper(cls, v: str) -> str:
        _decode_unpadded(v)
        return v

    @property
    def pepper(self) -> bytes:
        return _decode_unpadded(self.pwd_pepper)


def _decode_unpadded(value: str) -> bytes:
    try:
        return base64.b64decode(value + "=" * (-len(value) % 4), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("pepper is not valid base64") from e


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
