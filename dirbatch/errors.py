"""Exception taxonomy for dirbatch.

Only ``PermissionDenied`` and ``GatewayUnavailable`` end the process.  Every
other failure is caught at the narrowest scope (duplicate check, creation
call, single membership add) and turned into a status on the user's
``ProvisionOutcome``.  Duplicates and operator declines are statuses, not
exceptions.
"""

from typing import Optional


class DirbatchError(Exception):
    """Base class for all dirbatch errors."""


class PermissionDenied(DirbatchError):
    """The permission probe failed; the batch must not start."""


class ValidationError(DirbatchError):
    """Malformed operator input.  Recovered locally by re-prompting."""


class DirectoryError(DirbatchError):
    """A directory gateway operation failed.

    Attributes:
        cause: Human-readable reason reported by the directory (or the
               transport), suitable for showing to the operator.
    """

    def __init__(self, message: str, cause: Optional[str] = None):
        super().__init__(message)
        self.cause = cause or message


class GatewayUnavailable(DirectoryError):
    """The gateway could not be loaded, bound or connected."""


class CreationError(DirectoryError):
    """The directory rejected object creation (policy, path, duplicate, connectivity)."""


class LinkError(DirectoryError):
    """Adding a member to a group failed."""
