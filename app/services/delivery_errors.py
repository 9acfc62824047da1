from __future__ import annotations


class ChannelDeliveryError(RuntimeError):
    """A reminder channel tried to deliver and the provider failed."""

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class ChannelNotConfiguredError(ValueError):
    """A channel is disabled or lacks the credentials it needs."""
