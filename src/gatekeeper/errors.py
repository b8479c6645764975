"""Exception types raised by Gatekeeper."""


class GatekeeperError(Exception):
    """Base class for gate failures."""


class StoreError(GatekeeperError):
    """The rate-limit store is unavailable or not connected."""


class StoreContentionError(StoreError):
    """A compare-and-swap kept losing to concurrent writers."""

    def __init__(self, key: str, attempts: int) -> None:
        super().__init__(f"gave up updating {key!r} after {attempts} attempts")
        self.key = key
        self.attempts = attempts
