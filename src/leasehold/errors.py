"""Exception hierarchy for leasehold.

Store errors are raised by LeaseStore implementations and handled inside
the claim task. Only initialization and configuration errors propagate to
the caller.
"""

from __future__ import annotations


class LeaseholdError(Exception):
    """Base class for all leasehold errors."""


class LeaseStoreError(LeaseholdError):
    """Base class for errors reported by a lease store."""

    def __init__(self, message: str, *, namespace: str = "", name: str = "") -> None:
        super().__init__(message)
        self.namespace = namespace
        self.name = name


class AlreadyExists(LeaseStoreError):
    """A create found an existing record."""


class NotFound(LeaseStoreError):
    """The record does not exist."""


class Conflict(LeaseStoreError):
    """The record version changed since it was read."""


class TransientStoreError(LeaseStoreError):
    """The store could not be reached or timed out. Safe to retry."""


class LeaseSchemaError(LeaseStoreError):
    """A stored record could not be decoded as a lease."""


class LeaseConfigError(LeaseholdError):
    """Invalid claim parameters or identity."""


class LeaseInitError(LeaseholdError):
    """The lease record could not be initialized."""


class ObserverClosed(LeaseholdError):
    """The claim task behind a holder observer has terminated."""

    def __init__(self, error: BaseException | None = None) -> None:
        message = "holder observer closed"
        if error is not None:
            message = f"{message}: {error}"
        super().__init__(message)
        self.error = error
