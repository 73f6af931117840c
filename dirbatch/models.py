"""Data model shared by the provisioning workflow and the directory gateways.

All records are frozen: a ``PrincipalDraft`` is built once per intake
iteration and consumed by exactly one ``Provisioner.provision()`` call, and a
``ProvisionOutcome`` is produced once per draft and only aggregated afterwards.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .errors import ValidationError


class AssignmentMode(enum.Enum):
    SHARED_ACROSS_BATCH = "shared"
    PER_USER = "per-user"


class ProvisionStatus(enum.Enum):
    CREATED = "created"
    SKIPPED_DUPLICATE = "skipped-duplicate"
    SKIPPED_BY_OPERATOR = "skipped-by-operator"
    CREATION_FAILED = "creation-failed"
    PARTIALLY_LINKED = "partially-linked"


class LinkStatus(enum.Enum):
    LINKED = "linked"
    NOT_FOUND = "not-found"
    LINK_FAILED = "link-failed"


@dataclass(frozen=True)
class DirectoryObject:
    """A user or group as seen through a gateway.

    Attributes:
        ref:  Stable locator (LDAP distinguished name, SCIM resource location).
        name: Short name (sAMAccountName, SCIM userName/displayName).
        kind: ``"user"`` or ``"group"``.
    """

    ref: str
    name: str
    kind: str = "user"


@dataclass(frozen=True)
class DomainDefaults:
    default_user_container: str
    domain_identity: str = ""


@dataclass(frozen=True)
class GroupAssignmentPlan:
    """How target groups are chosen for a batch.

    In ``SHARED_ACROSS_BATCH`` mode ``groups`` applies to every draft; in
    ``PER_USER`` mode ``groups`` is empty and each draft carries its own.
    """

    mode: AssignmentMode
    groups: Tuple[str, ...] = ()

    @classmethod
    def shared(cls, groups) -> "GroupAssignmentPlan":
        return cls(AssignmentMode.SHARED_ACROSS_BATCH, tuple(groups))

    @classmethod
    def per_user(cls) -> "GroupAssignmentPlan":
        return cls(AssignmentMode.PER_USER)

    @property
    def is_shared(self) -> bool:
        return self.mode is AssignmentMode.SHARED_ACROSS_BATCH


# Draft field -> directory attribute, in the order attributes are submitted
_ATTRIBUTE_NAMES = (
    ("given_name", "givenName"),
    ("surname", "sn"),
    ("display_name", "displayName"),
    ("sam_account_name", "sAMAccountName"),
    ("user_principal_name", "userPrincipalName"),
    ("title", "title"),
    ("department", "department"),
    ("office", "physicalDeliveryOfficeName"),
    ("description", "description"),
)


@dataclass(frozen=True)
class PrincipalDraft:
    """Attributes collected for one user before creation.

    Optional attributes are ``None`` when the operator left them blank; they
    are omitted from the creation request rather than written as empty
    strings.  The credential is excluded from ``repr`` so a draft can be
    logged safely.
    """

    sam_account_name: str
    display_name: str
    container: str
    credential: str = field(repr=False)
    given_name: Optional[str] = None
    surname: Optional[str] = None
    user_principal_name: Optional[str] = None
    title: Optional[str] = None
    department: Optional[str] = None
    office: Optional[str] = None
    description: Optional[str] = None
    target_groups: Tuple[str, ...] = ()
    credential_generated: bool = False
    change_password_at_logon: bool = True

    def __post_init__(self):
        if not self.sam_account_name or not self.sam_account_name.strip():
            raise ValidationError("sAMAccountName must not be empty")
        if not self.display_name or not self.display_name.strip():
            raise ValidationError("displayName must not be empty")
        if not self.credential:
            raise ValidationError("a credential is required")

    def directory_attributes(self) -> Dict[str, str]:
        """Return the attribute set for ``create_user``, skipping absent values."""
        attrs: Dict[str, str] = {}
        for field_name, attr_name in _ATTRIBUTE_NAMES:
            value = getattr(self, field_name)
            if value:
                attrs[attr_name] = value
        return attrs


@dataclass(frozen=True)
class GroupLink:
    identifier: str
    status: LinkStatus
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"group": self.identifier, "status": self.status.value}
        if self.message:
            d["message"] = self.message
        return d


@dataclass(frozen=True)
class ProvisionOutcome:
    """Terminal state of one batch index.

    Attributes:
        index:        1-based position in the batch.
        account_name: The sAMAccountName the outcome concerns.
        status:       Terminal ``ProvisionStatus``.
        ref:          Reference of the created object, when one was created.
        links:        One ``GroupLink`` per target group, in request order.
        message:      Cause of a failure or skip, for the operator.
    """

    index: int
    account_name: str
    status: ProvisionStatus
    ref: Optional[str] = None
    links: Tuple[GroupLink, ...] = ()
    message: str = ""

    @property
    def object_created(self) -> bool:
        return self.status in (ProvisionStatus.CREATED, ProvisionStatus.PARTIALLY_LINKED)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict for JSON output.  Omits empty fields."""
        d: Dict[str, Any] = {
            "index": self.index,
            "account": self.account_name,
            "status": self.status.value,
        }
        if self.ref:
            d["ref"] = self.ref
        if self.links:
            d["groups"] = [link.to_dict() for link in self.links]
        if self.message:
            d["message"] = self.message
        return d


@dataclass(frozen=True)
class PermissionCheckResult:
    """Verdict of the permission probe.

    ``steps`` lists the probe steps that completed, in order, so the operator
    can see how far the check got before it failed.
    """

    passed: bool
    cause: str = ""
    steps: Tuple[str, ...] = ()
