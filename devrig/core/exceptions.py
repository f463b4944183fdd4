"""Exceptions raised by the devrig core."""


class DevRigError(Exception):
    """Base class for devrig errors."""


class StateFileError(DevRigError):
    """Raised when the local instance record cannot be parsed.

    The file is never repaired automatically; the operator must fix or
    remove it.
    """


class BootstrapError(DevRigError):
    """Raised when the user-data descriptor cannot be built."""


class ProvisioningTimeoutError(DevRigError):
    """Raised when an instance does not reach the expected state in time."""


class RemoteQueryError(DevRigError):
    """Raised when the remote state could not be determined.

    Never used to justify a destructive action; the local record is kept.
    """


class TransitionInProgressError(DevRigError):
    """Raised when an action is requested while the instance is transitioning."""


class NoAddressError(DevRigError):
    """Raised when the instance has neither a tailnet peer nor a public address."""
