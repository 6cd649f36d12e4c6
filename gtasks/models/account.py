"""Config document and account models.

On disk the document uses camelCase keys::

    {"oauth": {...}, "accounts": [...], "settings": {"defaultAccount": ...}}
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_REDIRECT_URI = "http://localhost:3000/oauth/callback"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountStatus(StrEnum):
    """Connection status of an account."""

    UNKNOWN = "unknown"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    ERROR = "error"


class OAuthClientConfig(_CamelModel):
    """OAuth client credentials from the Google Cloud console."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class TokenBundle(_CamelModel):
    """Encrypted token pair plus expiry (epoch milliseconds)."""

    access_token: str
    refresh_token: str
    expires_at: int | None = None
    scope: str | None = None


class Account(_CamelModel):
    """One authorized identity."""

    email: str
    display_name: str | None = None
    tokens: TokenBundle | None = None
    added_at: datetime | None = None
    last_used: datetime | None = None
    status: AccountStatus = AccountStatus.UNKNOWN

    def matches(self, email: str) -> bool:
        return self.email.lower() == email.lower()


class Settings(_CamelModel):
    """User settings. Unknown keys are kept as-is."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    default_account: str | None = None
    output_format: str = "table"


class Config(_CamelModel):
    """The whole persisted document."""

    oauth: OAuthClientConfig | None = None
    accounts: list[Account] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)

    def find_index(self, email: str) -> int | None:
        for index, account in enumerate(self.accounts):
            if account.matches(email):
                return index
        return None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
