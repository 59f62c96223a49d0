"""Base exceptions for peerrelay."""


class RelayError(Exception):
    """Base exception for all relay errors."""

    pass


class ConfigError(RelayError):
    """Invalid configuration value."""

    pass


class MessageError(RelayError):
    """Inbound frame could not be decoded into a relay message."""

    pass


class IdExhaustedError(RelayError):
    """No free peer ID could be generated within the retry ceiling."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"No free peer ID after {attempts} attempts")
