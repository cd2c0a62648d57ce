"""
Referenda Tester Exceptions

Custom exception classes for the referenda dry-run tooling.
"""


class ReferendaTesterError(Exception):
    """Base exception for the referenda tester."""
    pass


class ConfigurationError(ReferendaTesterError):
    """Invalid configuration or command line input."""
    pass


class ChainConnectionError(ReferendaTesterError):
    """Chain client could not connect or query."""
    pass


class NotFoundError(ReferendaTesterError):
    """Requested on-chain item does not exist."""
    pass


class InvalidStateError(ReferendaTesterError):
    """Referendum is in a status that cannot be forced."""
    pass


class DecodeError(ReferendaTesterError):
    """Call data could not be decoded against the runtime."""
    pass


class ScheduledCallNotFoundError(NotFoundError):
    """No scheduler agenda item matched the referendum."""

    def __init__(self, referendum_id: int, call_type: str):
        self.referendum_id = referendum_id
        self.call_type = call_type
        super().__init__(f"Scheduled {call_type} call not found for referendum {referendum_id}")


class ForkEngineError(ReferendaTesterError):
    """Fork engine process or RPC failure."""
    pass


class ForkTimeoutError(ReferendaTesterError, TimeoutError):
    """Bounded polling of a fork or chain was exhausted."""
    pass


class ReferendumCreationError(ReferendaTesterError):
    """Submitting a creation call produced no new referendum."""
    pass
