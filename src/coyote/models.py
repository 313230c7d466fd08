"""Broker endpoint and delivery models."""

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field

from coyote.errors import ConfigurationError

AMQP_SCHEMES = ("amqp", "amqps")


class Endpoint(BaseModel):
    """
    Broker URI together with the credentials resolved for it.

    Immutable: resolving credentials produces a new Endpoint.
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="amqp:// or amqps:// broker URI")

    @classmethod
    def parse(cls, url: str) -> "Endpoint":
        """
        Validate a broker URI.

        Raises:
            ConfigurationError: If the URI is not an amqp/amqps URI with a host
        """
        try:
            parts = urlsplit(url)
            parts.port  # raises on an invalid port
        except ValueError as e:
            raise ConfigurationError(f"failed to parse provided url: {e}") from e
        if parts.scheme not in AMQP_SCHEMES:
            raise ConfigurationError(
                f"url must start with amqps:// or amqp://, got scheme '{parts.scheme}'"
            )
        if not parts.hostname:
            raise ConfigurationError("url must contain a host")
        return cls(url=url)

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    @property
    def is_secure(self) -> bool:
        return self.scheme == "amqps"

    @property
    def host(self) -> str:
        """Host and optional port, without credentials."""
        parts = urlsplit(self.url)
        host = parts.hostname or ""
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{parts.port}" if parts.port else host

    @property
    def username(self) -> str | None:
        username = urlsplit(self.url).username
        return unquote(username) if username else None

    @property
    def password(self) -> str | None:
        password = urlsplit(self.url).password
        return unquote(password) if password else None

    def with_credentials(self, username: str, password: str) -> "Endpoint":
        parts = urlsplit(self.url)
        netloc = f"{quote(username, safe='')}:{quote(password, safe='')}@{self.host}"
        return Endpoint(url=urlunsplit(parts._replace(netloc=netloc)))

    def redacted(self) -> str:
        """URI safe for logging, the password is masked."""
        parts = urlsplit(self.url)
        if parts.username is None:
            return self.url
        netloc = f"{parts.username}:***@{self.host}" if parts.password else f"{parts.username}@{self.host}"
        return urlunsplit(parts._replace(netloc=netloc))

    def __str__(self) -> str:
        return self.redacted()


class Delivery(BaseModel):
    """A single message received by the interceptor queue."""

    exchange: str = ""
    routing_key: str = ""
    correlation_id: str | None = None
    reply_to: str | None = None
    headers: dict[str, Any] = Field(default_factory=dict)
    body: bytes = b""
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_message(cls, message: Any) -> "Delivery":
        """Build a Delivery from an aio-pika IncomingMessage."""
        return cls(
            exchange=message.exchange or "",
            routing_key=message.routing_key or "",
            correlation_id=message.correlation_id,
            reply_to=message.reply_to,
            headers=dict(message.headers or {}),
            body=message.body or b"",
        )

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
