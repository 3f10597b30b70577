from __future__ import annotations

from datetime import datetime
from enum import Enum
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def avatar_url(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(str(name or ''), safe='')}&background=000&color=fff"


class AuthState(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    ERROR = "ERROR"


class _Persisted(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class Principal(_Persisted):
    """
    Public identity of the signed-in user. Carries no credential material.
    """

    id: str
    email: str
    name: str
    avatar: str = ""
    created_at: datetime


class UserRecord(_Persisted):
    id: str
    email: str
    name: str
    password_hash: str = Field(repr=False)
    created_at: datetime
    avatar: str = ""

    def to_principal(self) -> Principal:
        return Principal(id=self.id, email=self.email, name=self.name, avatar=self.avatar, created_at=self.created_at)


class Credentials(BaseModel):
    model_config = ConfigDict(extra="forbid")
    email: str
    password: str = Field(repr=False)


class RegisterData(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, repr=False)
