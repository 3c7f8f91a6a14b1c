"""Tests for createvm.validators module."""

import pytest

from createvm.validators import (
    is_yes,
    validate_cores,
    validate_disk_size,
    validate_dns_servers,
    validate_existing_ssh_key_name,
    validate_ip,
    validate_new_ssh_key_name,
    validate_os_codename,
    validate_ram,
    validate_storage,
    validate_user,
    validate_vm_id,
    validate_vm_name,
    validate_yes_no,
)
from tests.conftest import InMemoryKeyStore


class TestValidateVmId:
    @pytest.mark.parametrize("value", ["100", "555", "999", 105])
    def test_accepts_range(self, value):
        assert validate_vm_id(value, set()) == (True, None)

    @pytest.mark.parametrize("value", ["99", "1000", "0", "-100", "abc", "", None, "10a", "1e2"])
    def test_rejects_outside_range_or_not_a_number(self, value):
        ok, reason = validate_vm_id(value, set())
        assert not ok
        assert "between 100 and 999" in reason

    def test_rejects_id_in_use(self):
        ok, reason = validate_vm_id("105", {105, 200})
        assert not ok
        assert "already in use" in reason


class TestValidateVmName:
    def test_accepts_unused_name(self):
        assert validate_vm_name("web1", {"db1"}) == (True, None)

    def test_rejects_empty(self):
        ok, reason = validate_vm_name("", set())
        assert not ok
        assert "cannot be empty" in reason

    def test_rejects_existing_name(self):
        ok, reason = validate_vm_name("web1", {"web1"})
        assert not ok
        assert "already in use" in reason

    def test_comparison_is_case_sensitive(self):
        assert validate_vm_name("Web1", {"web1"})[0] is True


class TestValidateRam:
    @pytest.mark.parametrize("value", ["1", "0.5", "16", "15.75"])
    def test_accepts_positive_up_to_max(self, value):
        assert validate_ram(value, 16)[0] is True

    @pytest.mark.parametrize("value", ["0", "0.0", "17", "16.1", "-1", "abc", "", "4GB"])
    def test_rejects(self, value):
        ok, reason = validate_ram(value, 16)
        assert not ok
        assert "<= 16" in reason

    @pytest.mark.parametrize("value", ["0.0001", "0.01"])
    def test_rejects_below_minimum_memory(self, value):
        ok, reason = validate_ram(value, 16)
        assert not ok
        assert "at least 16 MB" in reason

    def test_accepts_minimum_memory(self):
        assert validate_ram("0.015625", 16) == (True, None)


class TestValidateCores:
    @pytest.mark.parametrize("value", ["1", "8"])
    def test_accepts(self, value):
        assert validate_cores(value, 8)[0] is True

    @pytest.mark.parametrize("value", ["0", "9", "1.5", "", "two"])
    def test_rejects(self, value):
        assert validate_cores(value, 8)[0] is False


class TestValidateDiskSize:
    @pytest.mark.parametrize("value", ["1", "20", "10.5"])
    def test_accepts(self, value):
        assert validate_disk_size(value)[0] is True

    @pytest.mark.parametrize("value", ["0", "0.0", "-5", "", "20G"])
    def test_rejects(self, value):
        assert validate_disk_size(value)[0] is False


class TestValidateStorage:
    def test_accepts_known_storage(self):
        assert validate_storage("local-lvm", ("local", "local-lvm")) == (True, None)

    def test_rejects_empty(self):
        ok, reason = validate_storage("", ("local",))
        assert not ok
        assert "cannot be empty" in reason

    def test_rejects_unknown_storage(self):
        ok, reason = validate_storage("ceph", ("local", "local-lvm"))
        assert not ok
        assert "local, local-lvm" in reason


class TestSimpleValidators:
    def test_user(self):
        assert validate_user("admin")[0] is True
        assert validate_user("")[0] is False

    @pytest.mark.parametrize("value", ["y", "Y", "n", "N"])
    def test_yes_no_accepts(self, value):
        assert validate_yes_no(value)[0] is True

    @pytest.mark.parametrize("value", ["yes", "", "x", "YN"])
    def test_yes_no_rejects(self, value):
        assert validate_yes_no(value)[0] is False

    def test_is_yes(self):
        assert is_yes("y") and is_yes("Y")
        assert not is_yes("n") and not is_yes(None)

    def test_os_codename(self):
        assert validate_os_codename("noble")[0] is True
        ok, reason = validate_os_codename("jammy")
        assert not ok
        assert "noble" in reason


class TestValidateIp:
    @pytest.mark.parametrize("value", ["10.0.0.5", "192.168.86.1", "999.999.999.999"])
    def test_format_only(self, value):
        assert validate_ip(value)[0] is True

    @pytest.mark.parametrize("value", ["1.2.3", "1.2.3.4.5", "", "a.b.c.d", "10.0.0.5/24"])
    def test_rejects(self, value):
        assert validate_ip(value)[0] is False


class TestValidateDnsServers:
    @pytest.mark.parametrize("value", ["1.1.1.1", "1.1.1.1 8.8.8.8", "  8.8.8.8   8.8.4.4 "])
    def test_accepts(self, value):
        assert validate_dns_servers(value) == (True, None)

    def test_rejects_empty(self):
        ok, reason = validate_dns_servers("")
        assert not ok
        assert "No DNS servers" in reason

    @pytest.mark.parametrize("value", ["1.2.3", "1.1.1.1 1.2.3.4.5", "1.1.1.1:8.8.8.8"])
    def test_rejects_bad_entry(self, value):
        ok, reason = validate_dns_servers(value)
        assert not ok
        assert "Wrong format" in reason


class TestSshKeyNames:
    def test_existing_requires_both_files(self):
        store = InMemoryKeyStore({'ops': {'private', 'public'}, 'half': {'public'}})
        assert validate_existing_ssh_key_name('ops', store)[0] is True
        assert validate_existing_ssh_key_name('half', store)[0] is False
        assert validate_existing_ssh_key_name('missing', store)[0] is False
        assert validate_existing_ssh_key_name('', store)[0] is False

    def test_new_name_must_not_exist(self):
        store = InMemoryKeyStore({'ops': {'private', 'public'}, 'half': {'public'}})
        assert validate_new_ssh_key_name('fresh', store)[0] is True
        assert validate_new_ssh_key_name('ops', store)[0] is False
        assert validate_new_ssh_key_name('half', store)[0] is False
        assert validate_new_ssh_key_name('', store)[0] is False

    def test_new_name_rejects_path_separators(self):
        assert validate_new_ssh_key_name('../etc', InMemoryKeyStore())[0] is False

    @pytest.mark.parametrize("value", [".", ".."])
    def test_new_name_rejects_dot_names(self, value):
        ok, reason = validate_new_ssh_key_name(value, InMemoryKeyStore())
        assert not ok
        assert "cannot contain '/' or be '.' or '..'" in reason
