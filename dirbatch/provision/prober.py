"""Permission self-check using disposable probe objects.

The check never relies on pre-existing objects: it creates a disabled user
and a global group with random names, links them, and deletes both again.
If any step is refused the acting identity cannot run a batch.

Safety mechanisms:
- Probe names carry a 128-bit random suffix and the ``dirbatch-probe-`` prefix
- The probe user is created disabled with a random secret
- Cleanup runs in ``finally``, in reverse creation order (group before user),
  whatever step failed; cleanup errors never change the verdict
"""

import logging
import uuid
from typing import List, Optional

from ..config import PasswordPolicy
from ..credentials import generate_secret
from ..errors import DirectoryError, PermissionDenied
from ..gateway import DirectoryGateway
from ..models import DirectoryObject, PermissionCheckResult

logger = logging.getLogger(__name__)

PROBE_PREFIX = "dirbatch-probe-"

# sAMAccountName of user objects is limited to 20 characters
_ACCOUNT_SUFFIX_LENGTH = 17


def probe_names(suffix: str):
    """Return ``(user account name, user display name, group name)`` for a suffix."""
    return (
        f"prb{suffix[:_ACCOUNT_SUFFIX_LENGTH]}",
        f"{PROBE_PREFIX}{suffix}",
        f"{PROBE_PREFIX}grp-{suffix}",
    )


class PermissionProber:
    """Verifies read, create and link rights before a batch starts.

    Args:
        gateway:   Directory to probe.
        container: Container for the probe objects.  Defaults to the
                   directory's default user container.
        policy:    Policy for the probe user's throwaway secret.
    """

    def __init__(
        self,
        gateway: DirectoryGateway,
        container: Optional[str] = None,
        policy: PasswordPolicy = PasswordPolicy(),
    ):
        self.gateway = gateway
        self.container = container
        self.policy = policy

    def check(self) -> PermissionCheckResult:
        """Run the probe sequence and return the verdict.

        Steps, in order: read one user, create the probe user, create the
        probe group, add the user to the group.  Whatever was created is
        deleted before returning.
        """
        suffix = uuid.uuid4().hex
        account, display, group_name = probe_names(suffix)
        created: List[DirectoryObject] = []
        done: List[str] = []
        step = "read users"

        try:
            self.gateway.list_users(limit=1)
            done.append(step)

            step = "resolve probe container"
            container = self.container or self.gateway.query_domain_defaults().default_user_container

            step = "create test user"
            user = self.gateway.create_user(
                {
                    "sAMAccountName": account,
                    "displayName": display,
                    "description": "Temporary dirbatch permission probe",
                },
                generate_secret(self.policy),
                enabled=False,
                container=container,
            )
            created.append(user)
            done.append(step)

            step = "create test group"
            group = self.gateway.create_group(group_name, scope="global", container=container)
            created.append(group)
            done.append(step)

            step = "add test user to test group"
            self.gateway.add_member(group, user)
            done.append(step)
        except Exception as exc:
            cause = exc.cause if isinstance(exc, DirectoryError) else str(exc)
            logger.warning("Permission probe failed at %r: %s", step, cause)
            return PermissionCheckResult(False, f"{step}: {cause}", tuple(done))
        finally:
            self._cleanup(created)

        return PermissionCheckResult(True, "read, create and link rights confirmed", tuple(done))

    def require(self) -> PermissionCheckResult:
        """Like ``check()`` but raise ``PermissionDenied`` on failure."""
        result = self.check()
        if not result.passed:
            raise PermissionDenied(result.cause)
        return result

    def _cleanup(self, created: List[DirectoryObject]):
        """Delete probe objects in reverse order.  Failures are logged, never raised."""
        for obj in reversed(created):
            try:
                self.gateway.delete_object(obj.ref)
            except Exception as exc:
                logger.warning("Could not delete probe object %s: %s", obj.ref, exc)
