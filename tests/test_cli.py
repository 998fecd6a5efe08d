"""Tests for the permissions subcommand and localized strings."""

from nare.cli.permissions import run_permissions_command
from nare.core.i18n import STRINGS, t
from nare.core.prompts import build_system_prompt
from nare.core.session import Language
from nare.security.classifier import Capability
from nare.security.permissions import PermissionSet, PermissionStore


def test_grant_and_revoke_write_the_file(tmp_path):
    path = tmp_path / "permissions.json"

    assert run_permissions_command(["install_packages", "manage_services"], [], str(path)) == 0
    assert run_permissions_command([], ["manage_services"], str(path)) == 0

    assert PermissionStore(path).load().granted() == [Capability.INSTALL_PACKAGES]


def test_unknown_capability_exits_non_zero(tmp_path):
    path = tmp_path / "permissions.json"
    assert run_permissions_command(["everything"], [], str(path)) == 2
    assert not path.exists()


def test_show_only_does_not_create_file(tmp_path):
    path = tmp_path / "permissions.json"
    assert run_permissions_command([], [], str(path)) == 0
    assert not path.exists()


def test_every_string_has_every_language():
    for key, entry in STRINGS.items():
        assert set(entry) == {"en", "ko", "sv"}, key


def test_t_formats_and_falls_back():
    assert t("run.usage", Language.SV) == "Användning: /run <kommando>"
    assert t("confirm.cancelled", "xx", command="htop") == "Cancelled: `htop`"


def test_system_prompt_without_grants():
    prompt = build_system_prompt(PermissionSet(), Language.EN)
    assert "[CMD]" in prompt
    assert "none beyond read-only inspection" in prompt
    assert prompt.endswith("Always reply in English.")
