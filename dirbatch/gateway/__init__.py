"""Directory gateway: the capability set the provisioning workflow depends on.

The workflow only ever talks to a ``DirectoryGateway``.  Two bindings ship
with dirbatch:

- ``LdapGateway`` (``dirbatch.gateway.ldap``): Active Directory over LDAP via ``ldap3``.
- ``ScimGateway`` (``dirbatch.gateway.scim``): a SCIM 2.0 endpoint via ``requests``.

A gateway instance is built once at process start by ``build_gateway()`` and
passed explicitly to every component that needs it.
"""

import abc
from typing import Dict, List, Optional

from ..config import DirectoryConfig
from ..errors import GatewayUnavailable, ValidationError
from ..models import DirectoryObject, DomainDefaults


class DirectoryGateway(abc.ABC):
    """Primitive directory operations.

    Lookups return ``None`` when nothing matches and raise ``DirectoryError``
    when the directory could not be asked.  Writes raise ``CreationError`` or
    ``LinkError`` (both ``DirectoryError`` subclasses) on rejection.
    """

    @abc.abstractmethod
    def query_domain_defaults(self) -> DomainDefaults:
        """Return the default user container and the domain identity."""

    @abc.abstractmethod
    def list_users(self, limit: int = 1) -> List[DirectoryObject]:
        """Return at most ``limit`` existing users."""

    @abc.abstractmethod
    def query_user_by_account_name(self, name: str) -> Optional[DirectoryObject]:
        """Find a user by its account name (sAMAccountName / userName)."""

    @abc.abstractmethod
    def query_group_by_identifier(self, identifier: str) -> Optional[DirectoryObject]:
        """Resolve a group from a name, account name or full reference."""

    @abc.abstractmethod
    def create_user(
        self,
        attributes: Dict[str, str],
        credential: str,
        enabled: bool,
        container: Optional[str] = None,
        change_password_at_logon: bool = False,
    ) -> DirectoryObject:
        """Create a user in one request and return the created object."""

    @abc.abstractmethod
    def create_group(
        self,
        name: str,
        scope: str = "global",
        container: Optional[str] = None,
    ) -> DirectoryObject:
        """Create a security group and return the created object."""

    @abc.abstractmethod
    def add_member(self, group: DirectoryObject, member: DirectoryObject):
        """Add ``member`` to ``group``."""

    @abc.abstractmethod
    def delete_object(self, ref: str):
        """Delete the object at ``ref``."""

    def close(self):
        """Release the underlying connection."""

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def build_gateway(config: DirectoryConfig) -> DirectoryGateway:
    """Construct and connect the gateway selected by ``config.backend``.

    Raises:
        GatewayUnavailable: on invalid settings or when the directory cannot
                            be reached or bound.
    """
    try:
        config.validate()
    except ValidationError as exc:
        raise GatewayUnavailable(str(exc)) from exc

    if config.backend == "ldap":
        from .ldap import LdapGateway
        return LdapGateway.connect(config)

    from .scim import ScimGateway
    return ScimGateway.connect(config)
