"""Creates one user and links it to its groups.

Sequence: duplicate check -> create (single request) -> link each group.
Each step is isolated: a failure ends this user's sequence only.  Side
effects are strictly additive; a partially provisioned user is left in place
for the operator to fix, never rolled back.
"""

import logging
from typing import Optional

from ..errors import DirectoryError
from ..gateway import DirectoryGateway
from ..models import (
    DirectoryObject,
    GroupLink,
    LinkStatus,
    PrincipalDraft,
    ProvisionOutcome,
    ProvisionStatus,
)
from ..prompts import InputProvider

logger = logging.getLogger(__name__)


class Provisioner:
    """Runs the create-and-link sequence for a draft.

    Args:
        gateway: Directory to write to.
        input:   When given, causes are told to the operator as they happen
                 and a generated password is shown once after creation.
    """

    def __init__(self, gateway: DirectoryGateway, input: Optional[InputProvider] = None):
        self.gateway = gateway
        self.input = input

    def provision(self, draft: PrincipalDraft, index: int = 1) -> ProvisionOutcome:
        account = draft.sam_account_name

        # -- Duplicate check -------------------------------------------------
        try:
            existing = self.gateway.query_user_by_account_name(account)
        except DirectoryError as exc:
            return self._failed(index, account, f"duplicate check failed: {exc.cause}")
        if existing is not None:
            message = f"{account} already exists ({existing.ref})"
            logger.info("Skipping duplicate %s", account)
            self._tell(message, "warning")
            return ProvisionOutcome(index, account, ProvisionStatus.SKIPPED_DUPLICATE, message=message)

        # -- Creation --------------------------------------------------------
        try:
            user = self.gateway.create_user(
                draft.directory_attributes(),
                draft.credential,
                enabled=True,
                container=draft.container,
                change_password_at_logon=draft.change_password_at_logon,
            )
        except DirectoryError as exc:
            return self._failed(index, account, f"creation failed: {exc.cause}")

        logger.info("Created %s at %s", account, user.ref)
        self._tell(f"Created {user.ref}", "success")
        if draft.credential_generated:
            self._tell(f"Initial password for {account}: {draft.credential}  (shown once, not stored)", "heading")

        # -- Group linkage ---------------------------------------------------
        links = tuple(self._link(user, identifier) for identifier in draft.target_groups)
        misses = [link for link in links if link.status is not LinkStatus.LINKED]
        if not misses:
            return ProvisionOutcome(index, account, ProvisionStatus.CREATED, ref=user.ref, links=links)
        return ProvisionOutcome(
            index, account, ProvisionStatus.PARTIALLY_LINKED, ref=user.ref, links=links,
            message=f"{len(misses)} of {len(links)} group links did not succeed",
        )

    def _link(self, user: DirectoryObject, identifier: str) -> GroupLink:
        """Resolve one group and add ``user`` to it.  Never raises."""
        try:
            group = self.gateway.query_group_by_identifier(identifier)
        except DirectoryError as exc:
            group, cause = None, exc.cause
        else:
            cause = "no such group"
        if group is None:
            logger.warning("Group %r not found: %s", identifier, cause)
            self._tell(f"Group {identifier}: not found ({cause})", "error")
            return GroupLink(identifier, LinkStatus.NOT_FOUND, cause)

        try:
            self.gateway.add_member(group, user)
        except DirectoryError as exc:
            logger.warning("Adding %s to %s failed: %s", user.name, group.ref, exc.cause)
            self._tell(f"Group {identifier}: {exc.cause}", "error")
            return GroupLink(identifier, LinkStatus.LINK_FAILED, exc.cause)

        self._tell(f"Added to {group.name}", "dim")
        return GroupLink(identifier, LinkStatus.LINKED)

    def _failed(self, index: int, account: str, message: str) -> ProvisionOutcome:
        logger.error("%s: %s", account, message)
        self._tell(f"{account}: {message}", "error")
        return ProvisionOutcome(index, account, ProvisionStatus.CREATION_FAILED, message=message)

    def _tell(self, message: str, style: Optional[str] = None):
        if self.input is not None:
            self.input.tell(message, style=style)
