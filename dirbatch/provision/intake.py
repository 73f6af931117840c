"""Per-user attribute collection.

``UserIntake.collect()`` asks for one user's attributes, applies defaults,
re-prompts on malformed input and ends with a confirmation of the full draft.
A confirmed user yields a ``PrincipalDraft``; a declined one yields a
``SKIPPED_BY_OPERATOR`` outcome and never reaches the provisioner.

Defaults:
- display name: ``"<given> <surname>"``
- account name suggestion: ``given.surname`` lowercased, at most 20 characters
- userPrincipalName: ``<account>@<domain>``
- container: the directory's default user container, looked up once per batch
"""

import logging
from typing import Optional, Union

from ..config import PasswordPolicy
from ..credentials import generate_secret, mask
from ..errors import ValidationError
from ..gateway import DirectoryGateway
from ..models import (
    DomainDefaults,
    GroupAssignmentPlan,
    PrincipalDraft,
    ProvisionOutcome,
    ProvisionStatus,
)
from ..prompts import InputProvider
from .planner import collect_group_identifiers

logger = logging.getLogger(__name__)

MAX_ACCOUNT_NAME = 20
INVALID_ACCOUNT_CHARS = '"/\\[]:;|=,+*?<>@'


def validate_account_name(name: str) -> str:
    """Return ``name`` stripped, or raise ``ValidationError`` if AD would reject it."""
    name = name.strip()
    if not name:
        raise ValidationError("an account name is required")
    if len(name) > MAX_ACCOUNT_NAME:
        raise ValidationError(f"account names are limited to {MAX_ACCOUNT_NAME} characters")
    bad = sorted({c for c in name if c in INVALID_ACCOUNT_CHARS})
    if bad:
        raise ValidationError(f"account names cannot contain {' '.join(bad)}")
    if name.endswith("."):
        raise ValidationError("account names cannot end with a period")
    return name


def default_display_name(given: Optional[str], surname: Optional[str]) -> str:
    return " ".join(part for part in (given, surname) if part)


def suggest_account_name(given: Optional[str], surname: Optional[str]) -> Optional[str]:
    """Suggest ``given.surname`` when both names are present and the result is valid."""
    if not given or not surname:
        return None
    candidate = f"{given}.{surname}".lower().replace(" ", "")[:MAX_ACCOUNT_NAME].rstrip(".")
    try:
        return validate_account_name(candidate)
    except ValidationError:
        return None


def _optional(value: str) -> Optional[str]:
    value = value.strip()
    return value or None


# Answer that clears an optional attribute which has an offered default
CLEAR = "-"


class UserIntake:
    """Collects ``PrincipalDraft`` objects for one batch.

    The directory's defaults are looked up on first use and cached for the
    lifetime of the instance, so one instance must be used per batch.
    """

    def __init__(
        self,
        input: InputProvider,
        gateway: DirectoryGateway,
        policy: PasswordPolicy = PasswordPolicy(),
    ):
        self.input = input
        self.gateway = gateway
        self.policy = policy
        self._defaults: Optional[DomainDefaults] = None

    @property
    def defaults(self) -> DomainDefaults:
        if self._defaults is None:
            self._defaults = self.gateway.query_domain_defaults()
            logger.debug("Domain defaults: %s", self._defaults)
        return self._defaults

    def collect(self, index: int, plan: GroupAssignmentPlan) -> Union[PrincipalDraft, ProvisionOutcome]:
        """Collect user ``index`` of the batch.

        Raises:
            DirectoryError: if the directory defaults cannot be read.
        """
        self.input.tell("")
        self.input.tell(f"User {index}", style="heading")

        given, surname = self._ask_names()
        display = self.input.ask("Display name", default=default_display_name(given, surname)).strip()
        display = display or default_display_name(given, surname)
        account = self._ask_account_name(given, surname)

        identity = self.defaults.domain_identity
        upn_default = f"{account}@{identity}" if identity else None
        upn_prompt = f"User principal name ('{CLEAR}' for none)" if upn_default else "User principal name"
        upn = _optional(self.input.ask(upn_prompt, default=upn_default))
        if upn == CLEAR:
            upn = None

        title = _optional(self.input.ask("Title"))
        department = _optional(self.input.ask("Department"))
        office = _optional(self.input.ask("Office"))
        description = _optional(self.input.ask("Description"))

        container_default = self.defaults.default_user_container
        container = self.input.ask("Organizational unit", default=container_default).strip()
        container = container or container_default

        credential, generated = self._ask_credential()
        change_at_logon = self.input.confirm("Require a password change at next logon?", default=True)

        if plan.is_shared:
            groups = plan.groups
        else:
            groups = collect_group_identifiers(self.input, "Group")

        draft = PrincipalDraft(
            sam_account_name=account,
            display_name=display,
            container=container,
            credential=credential,
            given_name=given,
            surname=surname,
            user_principal_name=upn,
            title=title,
            department=department,
            office=office,
            description=description,
            target_groups=tuple(groups),
            credential_generated=generated,
            change_password_at_logon=change_at_logon,
        )

        self._review(draft)
        if not self.input.confirm(f"Create {account}?", default=True):
            self.input.tell(f"Skipped {account}.", style="warning")
            return ProvisionOutcome(
                index, account, ProvisionStatus.SKIPPED_BY_OPERATOR, message="declined by operator",
            )
        return draft

    # -- Prompts -------------------------------------------------------------

    def _ask_names(self):
        while True:
            given = _optional(self.input.ask("Given name"))
            surname = _optional(self.input.ask("Surname"))
            if given or surname:
                return given, surname
            self.input.tell("Enter a given name, a surname, or both.", style="error")

    def _ask_account_name(self, given: Optional[str], surname: Optional[str]) -> str:
        suggestion = suggest_account_name(given, surname)
        while True:
            try:
                return validate_account_name(self.input.ask("Account name (sAMAccountName)", default=suggestion))
            except ValidationError as exc:
                self.input.tell(f"Invalid account name: {exc}", style="error")

    def _ask_credential(self):
        """Return ``(secret, generated)``.  Supplied secrets are asked twice."""
        if self.input.confirm("Generate a random password?", default=True):
            return generate_secret(self.policy), True
        while True:
            secret = self.input.ask_secret("Password")
            if not secret:
                self.input.tell("The password cannot be empty.", style="error")
                continue
            if secret != self.input.ask_secret("Repeat password"):
                self.input.tell("The passwords do not match.", style="error")
                continue
            return secret, False

    def _review(self, draft: PrincipalDraft):
        """Show the draft as it will be submitted.  The credential is masked."""
        rows = [
            ("Account", draft.sam_account_name),
            ("Display name", draft.display_name),
            ("Given name", draft.given_name),
            ("Surname", draft.surname),
            ("UPN", draft.user_principal_name),
            ("Title", draft.title),
            ("Department", draft.department),
            ("Office", draft.office),
            ("Description", draft.description),
            ("Container", draft.container),
            ("Password", "(generated)" if draft.credential_generated else mask(draft.credential)),
            ("Change at logon", "yes" if draft.change_password_at_logon else "no"),
            ("Groups", ", ".join(draft.target_groups) or "(none)"),
        ]
        self.input.tell("")
        for label, value in rows:
            if value:
                self.input.tell(f"  {label:<16}{value}")
