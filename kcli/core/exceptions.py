"""Error taxonomy shared by the CLI, the domain services and the HTTP surface.

Structural and connection failures (`BrokerUnavailableError`, `ConfigError`,
`FilterSyntaxError`) abort the operation that raised them. Per-message
(`DecodeError`) and per-partition (`OffsetUnavailableError`) failures are
caught by the tail controller and the lag aggregator and never abort the
larger operation.
"""
from __future__ import annotations


class KcliError(Exception):
    """Base class for every error raised on purpose by kcli."""


class FilterSyntaxError(ValueError, KcliError):
    """Raised when a filter expression cannot be parsed.

    Attributes
    ----------
    token : str
        The malformed token (may be empty when something is missing).
    position : int
        Zero-based character offset of *token* in the original expression.
    """

    def __init__(self, message: str, token: str = "", position: int = 0) -> None:
        super().__init__(message)
        self.token = token
        self.position = position

    def __str__(self) -> str:
        base = super().__str__()
        if self.token:
            return f"{base} (at {self.position}: {self.token!r})"
        return f"{base} (at {self.position})"


class BrokerUnavailableError(KcliError):
    """Connection or metadata failure talking to the brokers."""


class DecodeError(KcliError):
    """A message payload is not a decodable JSON document."""


class OffsetUnavailableError(KcliError):
    """Offsets for one partition could not be retrieved."""

    def __init__(self, topic: str, partition: int | None = None, reason: str = "") -> None:
        where = topic if partition is None else f"{topic}/{partition}"
        super().__init__(f"offsets unavailable for {where}" + (f": {reason}" if reason else ""))
        self.topic = topic
        self.partition = partition


class TopicNotFoundError(KeyError, KcliError):
    """The broker has no metadata for the requested topic."""

    def __str__(self) -> str:
        return f"topic not found: {self.args[0]}" if self.args else "topic not found"


class ConfigError(KcliError):
    """Environment store could not be read, parsed or written."""


class EnvironmentNotFoundError(KeyError, ConfigError):
    def __str__(self) -> str:
        return f"Environment {self.args[0]} not found" if self.args else "Environment not found"


class NoActiveEnvironmentError(ConfigError):
    """No environment is marked active."""
