"""Active Directory binding over LDAP, built on ``ldap3``.

Users are created as ``user`` objects in a single ``add`` request carrying the
initial ``unicodePwd`` and the account-control flags, which Active Directory
only accepts over an encrypted connection (LDAPS, port 636).  Groups are
security groups; membership is a ``MODIFY_ADD`` on the group's ``member``
attribute.

Key behaviors:
- Default user container is ``CN=Users,<defaultNamingContext>`` unless configured
- Group identifiers may be a distinguished name, a sAMAccountName, a cn or a name
- All filter values are escaped; nothing is ever deleted except by ``delete_object``
"""

import logging
import ssl
from typing import Any, Dict, List, Optional

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import escape_rdn, parse_dn

from ..config import DirectoryConfig
from ..errors import CreationError, DirectoryError, GatewayUnavailable, LinkError
from ..models import DirectoryObject, DomainDefaults
from . import DirectoryGateway

logger = logging.getLogger(__name__)

# userAccountControl flags (NORMAL_ACCOUNT, plus ACCOUNTDISABLE)
UAC_NORMAL_ACCOUNT = 512
UAC_DISABLED_ACCOUNT = 514

# groupType values for security groups, by scope
GROUP_TYPES = {
    "global": -2147483646,
    "domain-local": -2147483644,
    "universal": -2147483640,
}

USER_OBJECT_CLASSES = ["top", "person", "organizationalPerson", "user"]
GROUP_OBJECT_CLASSES = ["top", "group"]

# LDAP result codes handled explicitly
_SUCCESS = 0
_SIZE_LIMIT_EXCEEDED = 4
_NO_SUCH_OBJECT = 32
_ENTRY_ALREADY_EXISTS = 68

_LOOKUP_ATTRIBUTES = ["sAMAccountName", "cn"]


def encode_password(password: str) -> bytes:
    """Encode a password for the AD ``unicodePwd`` attribute (quoted, UTF-16-LE)."""
    return f'"{password}"'.encode("utf-16-le")


def domain_identity_from_dn(dn: str) -> str:
    """Derive the DNS domain name from the ``DC=`` components of a DN.

    ``DC=corp,DC=example,DC=com`` -> ``corp.example.com``
    """
    try:
        parts = parse_dn(dn)
    except LDAPException:
        return ""
    return ".".join(value for attr, value, _ in parts if attr.lower() == "dc").lower()


def looks_like_dn(identifier: str) -> bool:
    """True when ``identifier`` parses as a multi-component distinguished name."""
    if "=" not in identifier or "," not in identifier:
        return False
    try:
        return len(parse_dn(identifier)) > 1
    except LDAPException:
        return False


def _first(values: Any) -> str:
    """Return a single string from an ldap3 attribute value (list or scalar)."""
    if isinstance(values, (list, tuple)):
        return str(values[0]) if values else ""
    return "" if values is None else str(values)


class LdapGateway(DirectoryGateway):
    """Directory gateway for Active Directory.

    Args:
        connection:     A bound ``ldap3.Connection``.
        base_dn:        Search root.  Read from the server's RootDSE
                        (``defaultNamingContext``) when omitted.
        user_container: Container new users default to.  ``CN=Users,<base_dn>``
                        when omitted.
    """

    def __init__(
        self,
        connection: ldap3.Connection,
        base_dn: Optional[str] = None,
        user_container: Optional[str] = None,
    ):
        self.connection = connection
        self._base_dn = base_dn
        self._user_container = user_container

    @classmethod
    def connect(cls, config: DirectoryConfig) -> "LdapGateway":
        """Open and bind a connection from ``config``.

        Raises:
            GatewayUnavailable: if the server cannot be reached or the bind fails.
        """
        try:
            server = ldap3.Server(
                config.server,
                port=config.port,
                use_ssl=config.use_ssl,
                tls=_tls_config(config),
                get_info=ldap3.ALL,
                connect_timeout=config.timeout,
            )
        except LDAPException as exc:
            raise GatewayUnavailable(f"invalid LDAP server settings for {config.server}: {exc}") from exc
        try:
            connection = ldap3.Connection(
                server,
                user=config.bind_dn,
                password=config.password,
                auto_bind=True,
                receive_timeout=config.timeout,
            )
        except LDAPException as exc:
            raise GatewayUnavailable(f"cannot bind to {config.server} as {config.bind_dn}: {exc}") from exc
        logger.debug("Bound to %s as %s", config.server, config.bind_dn)
        if not config.use_ssl:
            logger.warning("Connection is not encrypted; Active Directory rejects passwords over plain LDAP")
        return cls(connection, base_dn=config.base_dn, user_container=config.user_container)

    # -- Queries -------------------------------------------------------------

    def query_domain_defaults(self) -> DomainDefaults:
        base = self._naming_context()
        container = self._user_container or f"CN=Users,{base}"
        return DomainDefaults(container, domain_identity_from_dn(base))

    def list_users(self, limit: int = 1) -> List[DirectoryObject]:
        entries = self._search(
            self._naming_context(),
            "(&(objectClass=user)(sAMAccountName=*))",
            size_limit=limit,
        )
        return [self._to_object(e, "user") for e in entries[:limit]]

    def query_user_by_account_name(self, name: str) -> Optional[DirectoryObject]:
        entries = self._search(
            self._naming_context(),
            f"(&(objectClass=user)(sAMAccountName={escape_filter_chars(name)}))",
        )
        return self._to_object(entries[0], "user") if entries else None

    def query_group_by_identifier(self, identifier: str) -> Optional[DirectoryObject]:
        if looks_like_dn(identifier):
            entries = self._search(identifier, "(objectClass=group)", scope=ldap3.BASE)
        else:
            value = escape_filter_chars(identifier)
            entries = self._search(
                self._naming_context(),
                f"(&(objectClass=group)(|(sAMAccountName={value})(cn={value})(name={value})))",
            )
        if not entries:
            return None
        if len(entries) > 1:
            dns = ", ".join(e.entry_dn for e in entries)
            raise DirectoryError(f"group identifier {identifier!r} is ambiguous: {dns}")
        return self._to_object(entries[0], "group")

    # -- Writes --------------------------------------------------------------

    def create_user(
        self,
        attributes: Dict[str, str],
        credential: str,
        enabled: bool,
        container: Optional[str] = None,
        change_password_at_logon: bool = False,
    ) -> DirectoryObject:
        account = attributes.get("sAMAccountName", "")
        cn = attributes.get("displayName") or account
        container = container or self.query_domain_defaults().default_user_container
        dn = f"CN={escape_rdn(cn)},{container}"

        entry: Dict[str, Any] = {"objectClass": USER_OBJECT_CLASSES, "cn": cn}
        entry.update(attributes)
        entry["unicodePwd"] = encode_password(credential)
        entry["userAccountControl"] = UAC_NORMAL_ACCOUNT if enabled else UAC_DISABLED_ACCOUNT
        if change_password_at_logon:
            entry["pwdLastSet"] = 0

        logger.debug("Creating user %s at %s (enabled=%s)", account, dn, enabled)
        try:
            ok = self.connection.add(dn, attributes=entry)
        except LDAPException as exc:
            raise CreationError(f"cannot create {dn}: {exc}", cause=str(exc)) from exc
        if not ok:
            cause = self._result_message()
            raise CreationError(f"cannot create {dn}: {cause}", cause=cause)
        return DirectoryObject(dn, account, "user")

    def create_group(
        self,
        name: str,
        scope: str = "global",
        container: Optional[str] = None,
    ) -> DirectoryObject:
        if scope not in GROUP_TYPES:
            raise CreationError(f"unknown group scope {scope!r}")
        container = container or self.query_domain_defaults().default_user_container
        dn = f"CN={escape_rdn(name)},{container}"
        entry = {
            "objectClass": GROUP_OBJECT_CLASSES,
            "cn": name,
            "sAMAccountName": name,
            "groupType": GROUP_TYPES[scope],
        }
        logger.debug("Creating %s group %s", scope, dn)
        try:
            ok = self.connection.add(dn, attributes=entry)
        except LDAPException as exc:
            raise CreationError(f"cannot create {dn}: {exc}", cause=str(exc)) from exc
        if not ok:
            cause = self._result_message()
            raise CreationError(f"cannot create {dn}: {cause}", cause=cause)
        return DirectoryObject(dn, name, "group")

    def add_member(self, group: DirectoryObject, member: DirectoryObject):
        logger.debug("Adding %s to %s", member.ref, group.ref)
        try:
            ok = self.connection.modify(group.ref, {"member": [(ldap3.MODIFY_ADD, [member.ref])]})
        except LDAPException as exc:
            raise LinkError(f"cannot add {member.name} to {group.name}: {exc}", cause=str(exc)) from exc
        if ok:
            return
        if self.connection.result.get("result") == _ENTRY_ALREADY_EXISTS:
            logger.info("%s is already a member of %s", member.name, group.name)
            return
        cause = self._result_message()
        raise LinkError(f"cannot add {member.name} to {group.name}: {cause}", cause=cause)

    def delete_object(self, ref: str):
        logger.debug("Deleting %s", ref)
        try:
            ok = self.connection.delete(ref)
        except LDAPException as exc:
            raise DirectoryError(f"cannot delete {ref}: {exc}", cause=str(exc)) from exc
        if not ok:
            cause = self._result_message()
            raise DirectoryError(f"cannot delete {ref}: {cause}", cause=cause)

    def close(self):
        try:
            self.connection.unbind()
        except LDAPException as exc:
            logger.debug("Unbind failed: %s", exc)

    # -- Internals -----------------------------------------------------------

    def _naming_context(self) -> str:
        """Return the search root, reading it from the RootDSE on first use."""
        if self._base_dn:
            return self._base_dn
        info = self.connection.server.info
        contexts = info.other.get("defaultNamingContext") if info else None
        if not contexts:
            raise DirectoryError("server did not advertise a defaultNamingContext; configure a base DN")
        self._base_dn = _first(contexts)
        return self._base_dn

    def _search(
        self,
        base: str,
        search_filter: str,
        scope: str = ldap3.SUBTREE,
        size_limit: int = 0,
    ) -> List[Any]:
        """Run a search and return the matching entries.

        An absent base object is an empty result, not an error.
        """
        try:
            self.connection.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=scope,
                attributes=_LOOKUP_ATTRIBUTES,
                size_limit=size_limit,
            )
        except LDAPException as exc:
            raise DirectoryError(f"search under {base} failed: {exc}", cause=str(exc)) from exc

        code = self.connection.result.get("result", _SUCCESS)
        if code == _NO_SUCH_OBJECT:
            return []
        if code not in (_SUCCESS, _SIZE_LIMIT_EXCEEDED):
            cause = self._result_message()
            raise DirectoryError(f"search under {base} failed: {cause}", cause=cause)
        return list(self.connection.entries)

    @staticmethod
    def _to_object(entry: Any, kind: str) -> DirectoryObject:
        attrs = entry.entry_attributes_as_dict
        name = _first(attrs.get("sAMAccountName")) or _first(attrs.get("cn"))
        return DirectoryObject(entry.entry_dn, name, kind)

    def _result_message(self) -> str:
        """Format the last LDAP result as ``description: message``."""
        result = self.connection.result or {}
        description = result.get("description") or "unknown error"
        message = (result.get("message") or "").strip()
        return f"{description}: {message}" if message else description


def _tls_config(config: DirectoryConfig) -> Optional[ldap3.Tls]:
    """Build the TLS settings for an LDAPS connection."""
    if not config.use_ssl:
        return None
    if config.tls_no_verify:
        return ldap3.Tls(validate=ssl.CERT_NONE)
    if config.ca_bundle:
        return ldap3.Tls(validate=ssl.CERT_REQUIRED, ca_certs_file=config.ca_bundle)
    return ldap3.Tls(validate=ssl.CERT_REQUIRED)
