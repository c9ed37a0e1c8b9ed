"""Application identity sent during the authorization handshake."""

from __future__ import annotations

import hashlib
import re

from pydantic import BaseModel, ConfigDict, field_validator

_APP_ID = re.compile(r"^[0-9a-fA-F]{64}$")


def generate_app_id(app_name: str) -> str:
    """Derive a stable application id from its name (SHA-256 hex digest)."""
    return hashlib.sha256(app_name.encode("utf-8")).hexdigest()


class AppInfo(BaseModel):
    """Identity descriptor shown to the wallet user.

    Borrowed by the session for exactly one handshake message and never
    mutated.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str
    description: str
    url: str | None = None

    @field_validator("name", "description")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("id")
    @classmethod
    def _valid_id(cls, value: str | None) -> str | None:
        if value is not None and not _APP_ID.match(value):
            raise ValueError("app id must be 64 hexadecimal characters")
        return value

    def to_json(self) -> str:
        """Serialize to the handshake wire form."""
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def create(cls, name: str, description: str, url: str | None = None) -> AppInfo:
        """Create an identity whose id is derived from the app name."""
        return cls(id=generate_app_id(name), name=name, description=description, url=url)
