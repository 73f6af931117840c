"""Tests for the permission probe against the in-memory directory.

Covers the passing sequence, a failure at each step, cleanup order and
the guarantee that probe objects never outlive the check.
"""

import pytest

from dirbatch.errors import PermissionDenied
from dirbatch.provision.prober import PROBE_PREFIX, PermissionProber, probe_names
from tests.fake_directory import USERS_CONTAINER, FakeDirectory


@pytest.fixture
def directory():
    d = FakeDirectory()
    d.seed_user("existing")
    return d


def _probe_leftovers(directory):
    users = [ref for ref in directory.users if PROBE_PREFIX in ref]
    groups = [ref for ref in directory.groups if PROBE_PREFIX in ref]
    return users + groups


class TestProbeNames:

    def test_account_name_fits_sam_limit(self):
        account, display, group = probe_names("0123456789abcdef0123456789abcdef")
        assert len(account) <= 20
        assert account.startswith("prb")
        assert display == "dirbatch-probe-0123456789abcdef0123456789abcdef"
        assert group == "dirbatch-probe-grp-0123456789abcdef0123456789abcdef"


class TestPassingProbe:

    def test_passes_with_full_rights(self, directory):
        result = PermissionProber(directory).check()
        assert result.passed
        assert result.steps == (
            "read users",
            "create test user",
            "create test group",
            "add test user to test group",
        )

    def test_leaves_no_objects_behind(self, directory):
        PermissionProber(directory).check()
        assert _probe_leftovers(directory) == []
        assert directory.account_names() == ["existing"]

    def test_probe_user_is_created_disabled(self, directory):
        PermissionProber(directory).check()
        (attrs,) = directory.ops("create_user")
        assert attrs["sAMAccountName"].startswith("prb")
        assert attrs["displayName"].startswith(PROBE_PREFIX)

    def test_cleanup_deletes_group_before_user(self, directory):
        PermissionProber(directory).check()
        deleted = directory.ops("delete_object")
        assert len(deleted) == 2
        assert "-grp-" in deleted[0]
        assert "-grp-" not in deleted[1]

    def test_uses_configured_container(self, directory):
        container = "OU=Staging,DC=corp,DC=example,DC=com"
        PermissionProber(directory, container=container).check()
        assert all(ref.endswith(container) for ref in directory.ops("delete_object"))
        assert directory.ops("query_domain_defaults") == []

    def test_default_container_is_looked_up(self, directory):
        PermissionProber(directory).check()
        assert all(ref.endswith(USERS_CONTAINER) for ref in directory.ops("delete_object"))

    def test_probe_names_are_unique_per_run(self, directory):
        prober = PermissionProber(directory)
        prober.check()
        prober.check()
        first, second = directory.ops("create_group")
        assert first != second

    def test_require_returns_result(self, directory):
        assert PermissionProber(directory).require().passed


class TestFailingProbe:

    @pytest.mark.parametrize("op, step", [
        ("list_users", "read users"),
        ("query_domain_defaults", "resolve probe container"),
        ("create_user", "create test user"),
        ("create_group", "create test group"),
        ("add_member", "add test user to test group"),
    ])
    def test_failure_names_step_and_cause(self, directory, op, step):
        directory.fail_ops[op] = "insufficientAccessRights"
        result = PermissionProber(directory).check()
        assert not result.passed
        assert result.cause == f"{step}: insufficientAccessRights"
        assert step not in result.steps

    @pytest.mark.parametrize("op", ["list_users", "create_user", "create_group", "add_member"])
    def test_no_leftovers_after_failure(self, directory, op):
        directory.fail_ops[op] = "refused"
        PermissionProber(directory).check()
        assert _probe_leftovers(directory) == []

    def test_failed_group_creation_deletes_user_only(self, directory):
        directory.fail_ops["create_group"] = "refused"
        PermissionProber(directory).check()
        (deleted,) = directory.ops("delete_object")
        assert "-grp-" not in deleted

    def test_failed_user_creation_deletes_nothing(self, directory):
        directory.fail_ops["create_user"] = "refused"
        PermissionProber(directory).check()
        assert directory.ops("delete_object") == []

    def test_unexpected_exception_is_a_failed_check(self, directory):
        def boom(limit=1):
            raise RuntimeError("socket closed")
        directory.list_users = boom
        result = PermissionProber(directory).check()
        assert not result.passed
        assert result.cause == "read users: socket closed"

    def test_require_raises_permission_denied(self, directory):
        directory.fail_ops["create_user"] = "insufficientAccessRights"
        with pytest.raises(PermissionDenied, match="create test user"):
            PermissionProber(directory).require()


class TestCleanupFailures:

    def test_cleanup_errors_do_not_change_verdict(self, directory):
        directory.fail_ops["delete_object"] = "busy"
        result = PermissionProber(directory).check()
        assert result.passed
        assert len(directory.ops("delete_object")) == 2

    def test_cleanup_errors_do_not_mask_original_failure(self, directory):
        directory.fail_ops["add_member"] = "refused"
        directory.fail_ops["delete_object"] = "busy"
        result = PermissionProber(directory).check()
        assert not result.passed
        assert result.cause == "add test user to test group: refused"

    def test_cleanup_failure_is_logged(self, directory, caplog):
        directory.fail_ops["delete_object"] = "busy"
        PermissionProber(directory).check()
        assert "Could not delete probe object" in caplog.text
