"""Orchestrates a provisioning batch.

``BatchRunner.execute()`` is the whole operator session: permission probe,
batch planning, one intake/provision cycle per user, summary.  It returns an
exit code (0 = batch ran, 1 = permission check failed).

Safety mechanisms:
- Nothing is planned or written unless the permission probe passes
- Users are processed strictly one at a time, in intake order
- A failure for one user is recorded and the batch moves on; there is no
  retry and no rollback
"""

import datetime
import logging
from typing import List, Optional

from .. import __version__
from ..config import PasswordPolicy
from ..errors import DirectoryError, PermissionDenied
from ..gateway import DirectoryGateway
from ..models import GroupAssignmentPlan, ProvisionOutcome, ProvisionStatus
from ..prompts import InputProvider
from .intake import UserIntake
from .planner import BatchPlanner
from .prober import PermissionProber
from .provisioner import Provisioner
from .report import print_summary

logger = logging.getLogger(__name__)


class BatchRunner:
    """Drives intake and provisioning over a planned batch.

    Args:
        gateway:     Directory every component talks to.
        input:       Operator I/O.
        policy:      Policy for generated passwords.
        prober:      Permission check; a ``PermissionProber`` on ``gateway``
                     by default.
        json_output: Print the final summary as JSON.
    """

    def __init__(
        self,
        gateway: DirectoryGateway,
        input: InputProvider,
        policy: PasswordPolicy = PasswordPolicy(),
        prober: Optional[PermissionProber] = None,
        json_output: bool = False,
    ):
        self.gateway = gateway
        self.input = input
        self.policy = policy
        self.prober = prober or PermissionProber(gateway, policy=policy)
        self.json_output = json_output

    def execute(self) -> int:
        """Run the full session and return the process exit code."""
        self.input.tell("Checking directory permissions...", style="dim")
        try:
            result = self.prober.require()
        except PermissionDenied as exc:
            self.input.tell(f"Permission check failed: {exc}", style="error")
            self.input.tell("No users were created.", style="error")
            return 1
        self.input.tell(f"Permission check passed: {result.cause}.", style="success")

        count, plan = BatchPlanner(self.input).plan()
        self.run(count, plan)
        return 0

    def run(self, count: int, plan: GroupAssignmentPlan) -> List[ProvisionOutcome]:
        """Provision ``count`` users and return exactly ``count`` outcomes, in order."""
        run_timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        intake = UserIntake(self.input, self.gateway, self.policy)
        provisioner = Provisioner(self.gateway, self.input)

        outcomes: List[ProvisionOutcome] = []
        for index in range(1, count + 1):
            outcomes.append(self._run_one(index, plan, intake, provisioner))

        print_summary(
            outcomes, self.input, json_output=self.json_output,
            version=__version__, timestamp=run_timestamp,
        )
        return outcomes

    def _run_one(
        self,
        index: int,
        plan: GroupAssignmentPlan,
        intake: UserIntake,
        provisioner: Provisioner,
    ) -> ProvisionOutcome:
        try:
            result = intake.collect(index, plan)
        except DirectoryError as exc:
            # Intake only touches the directory to read its defaults
            message = f"cannot read directory defaults: {exc.cause}"
            logger.error("User %d: %s", index, message)
            self.input.tell(message, style="error")
            return ProvisionOutcome(index, "", ProvisionStatus.CREATION_FAILED, message=message)

        if isinstance(result, ProvisionOutcome):
            return result

        try:
            return provisioner.provision(result, index=index)
        except DirectoryError as exc:
            message = f"unexpected directory failure: {exc.cause}"
            logger.exception("User %d (%s): %s", index, result.sam_account_name, message)
            return ProvisionOutcome(index, result.sam_account_name, ProvisionStatus.CREATION_FAILED, message=message)
