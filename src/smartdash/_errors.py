"""Exception hierarchy for smartdash.

None of these errors is fatal to the process.  The worst observable
failure is a stale or offline device state, which is modelled as data
rather than raised.

- :class:`NotConnectedError` — a publish was attempted without a live
  session.  Recoverable; the caller may retry later.
- :class:`DecodeError` — a payload could not be decoded.  Recovered
  locally (raw value stored or update ignored), never propagated past
  the topic router.
- :class:`SubscriptionError` — a topic subscription failed.  Logged;
  the connection stays usable with reduced topic coverage.
- :class:`CommandError` — a user command carried an invalid value.
"""

from __future__ import annotations


class DashboardError(Exception):
    """Base exception for all smartdash errors."""


class NotConnectedError(DashboardError):
    """Publish attempted while no MQTT session is active."""


class DecodeError(DashboardError):
    """Inbound payload could not be decoded for its topic."""

    def __init__(self, message: str, *, topic: str = "", payload: str = "") -> None:
        self.topic = topic
        self.payload = payload
        super().__init__(message)


class SubscriptionError(DashboardError):
    """Subscribing to a topic failed."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)


class CommandError(DashboardError, ValueError):
    """A user-issued command carried an invalid value."""
