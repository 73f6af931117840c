"""Tests for the Active Directory gateway using ldap3's offline mock strategy.

The mock server has no schema, so these tests check what the gateway sends
and that it reads its own writes back; Active Directory specifics that the
mock cannot enforce (password policy, LDAPS) are covered by unit tests of
the encoding helpers.
"""

import ldap3
import pytest

from dirbatch.errors import CreationError, DirectoryError, LinkError
from dirbatch.gateway.ldap import (
    GROUP_TYPES,
    UAC_DISABLED_ACCOUNT,
    UAC_NORMAL_ACCOUNT,
    LdapGateway,
    domain_identity_from_dn,
    encode_password,
    looks_like_dn,
)
from dirbatch.models import DirectoryObject
from dirbatch.provision.prober import PermissionProber

BASE_DN = "DC=corp,DC=example,DC=com"
USERS = f"CN=Users,{BASE_DN}"
ADMIN_DN = f"CN=Administrator,{USERS}"


@pytest.fixture
def connection():
    server = ldap3.Server("fake_dc")
    conn = ldap3.Connection(server, user=ADMIN_DN, password="admin-pw", client_strategy=ldap3.MOCK_SYNC)
    conn.strategy.add_entry(ADMIN_DN, {"userPassword": "admin-pw", "cn": "Administrator"})
    conn.strategy.add_entry(f"CN=existing,{USERS}", {
        "objectClass": ["top", "person", "organizationalPerson", "user"],
        "cn": "existing",
        "sAMAccountName": "existing",
    })
    conn.strategy.add_entry(f"CN=Staff,{USERS}", {
        "objectClass": ["top", "group"],
        "cn": "Staff",
        "sAMAccountName": "Staff",
    })
    conn.bind()
    yield conn
    conn.unbind()


@pytest.fixture
def gateway(connection):
    return LdapGateway(connection, base_dn=BASE_DN)


@pytest.fixture
def sent(connection, monkeypatch):
    """Record every ``add`` request as ``(dn, attributes)``."""
    requests = []
    original = connection.add

    def recording_add(dn, object_class=None, attributes=None, controls=None):
        requests.append((dn, dict(attributes or {})))
        return original(dn, object_class, attributes, controls)

    monkeypatch.setattr(connection, "add", recording_add)
    return requests


def _has_member(connection, group_dn, member_dn):
    connection.search(group_dn, f"(member={member_dn})", search_scope=ldap3.BASE, attributes=["cn"])
    return len(connection.entries) == 1


class TestHelpers:

    def test_encode_password(self):
        assert encode_password("Pa55!") == '"Pa55!"'.encode("utf-16-le")

    def test_domain_identity(self):
        assert domain_identity_from_dn("DC=Corp,DC=Example,DC=com") == "corp.example.com"
        assert domain_identity_from_dn("OU=Staff,DC=corp,DC=example,DC=com") == "corp.example.com"

    def test_looks_like_dn(self):
        assert looks_like_dn("CN=VPN Users,OU=Groups,DC=corp,DC=example,DC=com")
        assert not looks_like_dn("VPN Users")
        assert not looks_like_dn("a=b")

    def test_global_security_group_type(self):
        assert GROUP_TYPES["global"] == -2147483646


class TestQueries:

    def test_domain_defaults(self, gateway):
        defaults = gateway.query_domain_defaults()
        assert defaults.default_user_container == USERS
        assert defaults.domain_identity == "corp.example.com"

    def test_configured_user_container(self, connection):
        container = f"OU=Staff,{BASE_DN}"
        gateway = LdapGateway(connection, base_dn=BASE_DN, user_container=container)
        assert gateway.query_domain_defaults().default_user_container == container

    def test_missing_naming_context(self, connection):
        with pytest.raises(DirectoryError, match="defaultNamingContext"):
            LdapGateway(connection).query_domain_defaults()

    def test_list_users(self, gateway):
        users = gateway.list_users(limit=1)
        assert users == [DirectoryObject(f"CN=existing,{USERS}", "existing", "user")]

    def test_user_by_account_name(self, gateway):
        assert gateway.query_user_by_account_name("existing").ref == f"CN=existing,{USERS}"

    def test_user_not_found(self, gateway):
        assert gateway.query_user_by_account_name("nobody") is None

    def test_filter_values_are_escaped(self, gateway):
        assert gateway.query_user_by_account_name("*") is None

    def test_group_by_name(self, gateway):
        group = gateway.query_group_by_identifier("Staff")
        assert group == DirectoryObject(f"CN=Staff,{USERS}", "Staff", "group")

    def test_group_by_dn(self, gateway):
        assert gateway.query_group_by_identifier(f"CN=Staff,{USERS}").name == "Staff"

    def test_group_not_found(self, gateway):
        assert gateway.query_group_by_identifier("Nope") is None
        assert gateway.query_group_by_identifier(f"CN=Nope,{USERS}") is None

    def test_user_is_not_a_group(self, gateway):
        assert gateway.query_group_by_identifier("existing") is None

    def test_ambiguous_group(self, connection, gateway):
        connection.strategy.add_entry(f"CN=Staff,OU=Branch,{BASE_DN}", {
            "objectClass": ["top", "group"],
            "cn": "Staff",
            "sAMAccountName": "Staff2",
        })
        with pytest.raises(DirectoryError, match="ambiguous"):
            gateway.query_group_by_identifier("Staff")


class TestCreateUser:

    ATTRS = {"sAMAccountName": "ada.lovelace", "displayName": "Ada Lovelace", "givenName": "Ada"}

    def test_single_add_request(self, gateway, sent):
        user = gateway.create_user(self.ATTRS, "Correct-Horse-9", enabled=True, container=USERS,
                                   change_password_at_logon=True)
        assert user == DirectoryObject(f"CN=Ada Lovelace,{USERS}", "ada.lovelace", "user")

        (dn, attrs), = sent
        assert dn == user.ref
        assert attrs["unicodePwd"] == encode_password("Correct-Horse-9")
        assert attrs["userAccountControl"] == UAC_NORMAL_ACCOUNT
        assert attrs["pwdLastSet"] == 0
        assert attrs["givenName"] == "Ada"
        assert "user" in attrs["objectClass"]

    def test_disabled_without_forced_change(self, gateway, sent):
        gateway.create_user(self.ATTRS, "pw", enabled=False)
        (_, attrs), = sent
        assert attrs["userAccountControl"] == UAC_DISABLED_ACCOUNT
        assert "pwdLastSet" not in attrs

    def test_default_container(self, gateway):
        user = gateway.create_user(self.ATTRS, "pw", enabled=True)
        assert user.ref == f"CN=Ada Lovelace,{USERS}"

    def test_readable_after_creation(self, gateway):
        user = gateway.create_user(self.ATTRS, "pw", enabled=True)
        assert gateway.query_user_by_account_name("ada.lovelace").ref == user.ref

    def test_rdn_is_escaped(self, gateway):
        attrs = dict(self.ATTRS, displayName="Lovelace, Ada")
        user = gateway.create_user(attrs, "pw", enabled=True)
        assert user.ref == f"CN=Lovelace\\, Ada,{USERS}"

    def test_existing_dn_rejected(self, gateway):
        gateway.create_user(self.ATTRS, "pw", enabled=True)
        with pytest.raises(CreationError) as exc_info:
            gateway.create_user(dict(self.ATTRS, sAMAccountName="ada2"), "pw", enabled=True)
        assert "entryAlreadyExists" in exc_info.value.cause


class TestGroups:

    def test_create_global_group(self, gateway, sent):
        group = gateway.create_group("Finance", container=USERS)
        assert group == DirectoryObject(f"CN=Finance,{USERS}", "Finance", "group")
        (_, attrs), = sent
        assert attrs["groupType"] == GROUP_TYPES["global"]
        assert attrs["sAMAccountName"] == "Finance"

    def test_unknown_scope(self, gateway):
        with pytest.raises(CreationError, match="scope"):
            gateway.create_group("Finance", scope="galactic")

    def test_add_member(self, connection, gateway):
        group = gateway.query_group_by_identifier("Staff")
        user = gateway.query_user_by_account_name("existing")
        gateway.add_member(group, user)
        assert _has_member(connection, group.ref, user.ref)

    def test_add_member_to_missing_group(self, gateway):
        user = gateway.query_user_by_account_name("existing")
        missing = DirectoryObject(f"CN=Missing,{USERS}", "Missing", "group")
        with pytest.raises(LinkError):
            gateway.add_member(missing, user)

    def test_delete_object(self, gateway):
        group = gateway.create_group("Temp")
        gateway.delete_object(group.ref)
        assert gateway.query_group_by_identifier("Temp") is None

    def test_delete_missing_object(self, gateway):
        with pytest.raises(DirectoryError):
            gateway.delete_object(f"CN=Missing,{USERS}")


class TestProbe:

    def test_probe_passes_and_cleans_up(self, connection, gateway):
        result = PermissionProber(gateway).check()
        assert result.passed
        connection.search(BASE_DN, "(cn=dirbatch-probe-*)", attributes=["cn"])
        assert connection.entries == []
