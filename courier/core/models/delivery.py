"""Transport settings for the two delivery channels (SMTP and Matrix)."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, SecretStr

from courier.core.defaults import DEFAULT_TRANSPORT_TIMEOUT_S


class SmtpConfig(BaseModel):
    host: str = Field(default='localhost', description='SMTP server host')
    port: Annotated[int, Field(ge=1, le=65535)] = 587
    secure: bool = Field(
        default=False, description='Implicit TLS on connect (port 465 style)'
    )
    user: str | None = None
    password: SecretStr | None = None
    from_address: str = Field(
        default='noreply@localhost', description='Envelope and header sender'
    )
    timeout_seconds: Annotated[float, Field(gt=0, le=300)] = DEFAULT_TRANSPORT_TIMEOUT_S

    @property
    def has_credentials(self) -> bool:
        """Login only happens when both user and password are present."""
        return bool(self.user) and self.password is not None and bool(
            self.password.get_secret_value()
        )


class MatrixConfig(BaseModel):
    homeserver_url: str | None = None
    access_token: SecretStr | None = None
    room_id: str | None = None
    timeout_seconds: Annotated[float, Field(gt=0, le=300)] = DEFAULT_TRANSPORT_TIMEOUT_S

    @property
    def is_configured(self) -> bool:
        return bool(
            self.homeserver_url
            and self.room_id
            and self.access_token is not None
            and self.access_token.get_secret_value()
        )
