from typing import List, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Wire format is camelCase; Python side stays snake_case.
    Either spelling is accepted on input.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateAccountRequest(CamelModel):
    """
    Registration payload.

    The email must be a valid address but is stored exactly as given,
    domain case included. No password rules are enforced beyond being
    present.
    """
    email: str
    password: str = Field(min_length=1)
    beta_key: str

    @field_validator("email")
    @classmethod
    def validate_email_address(cls, v: str) -> str:
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(f"value is not a valid email address: {e}") from e
        return v


class LogInRequest(CamelModel):
    """
    Login payload. The email is matched exactly against the stored one.
    """
    email: str
    password: str


class AccountResponse(CamelModel):
    """
    Safe account representation. Never includes the password hash.
    """
    id: int
    email: str

    model_config = ConfigDict(from_attributes=True)


class TagSignalsResponse(CamelModel):
    tag: str
    signals_for: int
    signals_against: int
    my_signal: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)


class SignalsResponse(CamelModel):
    tags: List[TagSignalsResponse]


class PatchSignalsRequest(CamelModel):
    url: str = Field(min_length=1)
    add: List[str] = []
    rm: List[str] = []
    erase: List[str] = []


class TagsResponse(CamelModel):
    tags: List[str]


class UrlsResponse(CamelModel):
    urls: List[str]


class MetaResponse(CamelModel):
    id: str
    title: str
    source: str

    model_config = ConfigDict(from_attributes=True)


class EmptyResponse(BaseModel):
    pass
