"""Tests for the key/value setter and the line edits."""

from __future__ import annotations

import pytest

from rampart.core.config_editor import WHITESPACE, apply_edit, apply_edits, edit_file, set_config, update_setting
from rampart.core.errors import ResourceMissing
from rampart.models.plans import LineEdit


# ----------------------------------------------------------------------
# update_setting / set_config
# ----------------------------------------------------------------------
def test_empty_file_gets_key_appended():
    text, status = update_setting("", "minlen", "8")
    assert text == "minlen = 8\n"
    assert status == "added"


def test_existing_value_is_replaced():
    text, status = update_setting("retry = 1\n", "retry", "3")
    assert text == "retry = 3\n"
    assert status == "updated"


def test_duplicates_collapse_to_first_match():
    text, _ = update_setting("retry = 1\nminlen = 8\nretry=2\n", "retry", "3")
    assert text == "retry = 3\nminlen = 8\n"


def test_existing_separator_spacing_is_kept():
    text, _ = update_setting("retry=1\n", "retry", "3")
    assert text == "retry=3\n"


def test_already_set_is_unchanged():
    text, status = update_setting("# comment\nretry = 3\n", "retry", "3")
    assert text == "# comment\nretry = 3\n"
    assert status == "unchanged"


def test_form_feed_does_not_merge_lines():
    text, status = update_setting("retry = 1\x0c# pager break\nminlen = 8\n", "retry", "3")
    assert text == "retry = 3\nminlen = 8\n"
    assert status == "updated"


def test_missing_trailing_newline_is_added_before_append():
    text, _ = update_setting("retry = 3", "minlen", "8")
    assert text == "retry = 3\nminlen = 8\n"


def test_longer_key_is_not_matched():
    text, status = update_setting("minlen2 = 5\n", "minlen", "8")
    assert text == "minlen2 = 5\nminlen = 8\n"
    assert status == "added"


def test_key_metacharacters_are_literal():
    text, status = update_setting("axb = 1\n", "a.b", "2")
    assert text == "axb = 1\na.b = 2\n"
    assert status == "added"


@pytest.mark.parametrize("value", [r"\1", "a&b", "x/y/z", "back\\slash", "$HOME"])
def test_value_metacharacters_round_trip(value):
    text, _ = update_setting("key = old\n", "key", value)
    assert text == f"key = {value}\n"


def test_whitespace_separator():
    text, status = update_setting("PASS_MAX_DAYS\t99999\nPASS_MIN_DAYS 0\n", "PASS_MAX_DAYS", "30", WHITESPACE)
    assert text == "PASS_MAX_DAYS\t30\nPASS_MIN_DAYS 0\n"
    assert status == "updated"

    text, status = update_setting("", "PASS_WARN_AGE", "7", WHITESPACE)
    assert text == "PASS_WARN_AGE   7\n"


def test_commented_lines_ignored_by_default():
    text, status = update_setting("# retry = 1\n", "retry", "3")
    assert text == "# retry = 1\nretry = 3\n"
    assert status == "added"


def test_match_commented_reactivates_line():
    text, status = update_setting(
        "#PermitRootLogin prohibit-password\n", "PermitRootLogin", "no", WHITESPACE, match_commented=True
    )
    assert text == "PermitRootLogin no\n"
    assert status == "updated"


def test_multiline_value_rejected():
    with pytest.raises(ValueError):
        update_setting("", "key", "a\nb")


def test_set_config_exactly_one_line(fs):
    fs.write_text("/etc/security/pwquality.conf", "# minlen = 9\nminlen = 6\nminlen=7\n")

    status = set_config(fs, "/etc/security/pwquality.conf", "minlen", "8")

    lines = fs.read_text("/etc/security/pwquality.conf").splitlines()
    assert status == "updated"
    assert [line for line in lines if line.startswith("minlen")] == ["minlen = 8"]


def test_set_config_missing_file(fs):
    with pytest.raises(ResourceMissing):
        set_config(fs, "/etc/security/pwquality.conf", "minlen", "8")


def test_set_config_create_missing(fs):
    assert set_config(fs, "/tmp/pwquality.conf", "minlen", "8", create_missing=True) == "added"
    assert fs.read_text("/tmp/pwquality.conf") == "minlen = 8\n"


def test_set_config_dry_run_does_not_write(fs):
    fs.write_text("/etc/default/useradd", "INACTIVE=-1\n")

    assert set_config(fs, "/etc/default/useradd", "INACTIVE", "30", dry_run=True) == "updated"
    assert fs.read_text("/etc/default/useradd") == "INACTIVE=-1\n"


# ----------------------------------------------------------------------
# Line edits
# ----------------------------------------------------------------------
PAM_SNIPPET = (
    "password    requisite     pam_pwquality.so local_users_only\n"
    "password    requisite     pam_pwhistory.so use_authtok remember=3\n"
    "password    sufficient    pam_unix.so yescrypt shadow use_authtok\n"
)

PAM_EDITS = [
    LineEdit(action="substitute", within=r"pam_pwhistory\.so", pattern=" remember=[0-9]+", replacement=""),
    LineEdit(action="substitute", within=r"pam_pwhistory\.so", pattern="$", replacement=" remember=5"),
    LineEdit(
        action="substitute",
        within=r"^password\s+\S+\s+pam_unix\.so",
        unless="sha512",
        pattern="$",
        replacement=" sha512",
    ),
]


def test_pam_edits_apply_and_are_idempotent():
    once = apply_edits(PAM_SNIPPET, PAM_EDITS)

    assert "pam_pwhistory.so use_authtok remember=5\n" in once
    assert "pam_unix.so yescrypt shadow use_authtok sha512\n" in once
    assert "pam_pwquality.so local_users_only\n" in once
    assert apply_edits(once, PAM_EDITS) == once


def test_delete_edit():
    text = "com2sec notConfigUser  default       public\nview systemview included .1\n"
    edit = LineEdit(action="delete", pattern=r"^com2sec notConfigUser\s+default\s+public")
    assert apply_edit(text, edit) == "view systemview included .1\n"


def test_edits_break_lines_on_newline_only():
    edit = LineEdit(action="delete", pattern="^a")
    assert apply_edit("a\x0bb\nc d\n", edit) == "c d\n"


def test_insert_before_once():
    text = "auth        required      pam_env.so\nauth        required      pam_faillock.so preauth\n"
    edit = LineEdit(
        action="insert_before",
        pattern=r"^auth\s+required\s+pam_faillock\.so",
        line="auth        [success=1 default=ignore] pam_succeed_if.so user = root",
    )

    once = apply_edit(text, edit)

    assert once.splitlines()[1] == "auth        [success=1 default=ignore] pam_succeed_if.so user = root"
    assert apply_edit(once, edit) == once


def test_insert_after_once():
    edit = LineEdit(action="insert_after", pattern="^# marker$", line="added")

    once = apply_edit("# marker\nrest\n", edit)

    assert once == "# marker\nadded\nrest\n"
    assert apply_edit(once, edit) == once


def test_append_if_missing_by_line_and_pattern():
    by_line = LineEdit(action="append_if_missing", line="umask 027")
    by_pattern = LineEdit(action="append_if_missing", pattern=r"^\s*umask", line="umask 027")

    assert apply_edit("export PATH\n", by_line) == "export PATH\numask 027\n"
    assert apply_edit("export PATH\n    umask 022\n", by_pattern) == "export PATH\n    umask 022\n"
    assert apply_edit("umask 027", by_line) == "umask 027"


def test_chrony_edits_are_idempotent():
    edits = [
        LineEdit(
            action="substitute",
            pattern=r"^\s*(pool|server)(?!\s+NTP_(PBS|BBT)_ST1\.kcs\s*$)",
            replacement=r"#\1",
        ),
        LineEdit(action="append_if_missing", line="server NTP_PBS_ST1.kcs"),
        LineEdit(action="append_if_missing", line="server NTP_BBT_ST1.kcs"),
    ]

    once = apply_edits("pool 2.rhel.pool.ntp.org iburst\ndriftfile /var/lib/chrony/drift\n", edits)

    assert once == (
        "#pool 2.rhel.pool.ntp.org iburst\n"
        "driftfile /var/lib/chrony/drift\n"
        "server NTP_PBS_ST1.kcs\n"
        "server NTP_BBT_ST1.kcs\n"
    )
    assert apply_edits(once, edits) == once


def test_edit_file_reports_change(fs):
    fs.write_text("/etc/profile", "umask 022\n")
    edits = [LineEdit(action="substitute", pattern=r"^\s*umask\s+[0-9]+", replacement="umask 027")]

    assert edit_file(fs, "/etc/profile", edits) is True
    assert fs.read_text("/etc/profile") == "umask 027\n"
    assert edit_file(fs, "/etc/profile", edits) is False


def test_edit_file_missing(fs):
    with pytest.raises(ResourceMissing):
        edit_file(fs, "/etc/profile", [LineEdit(action="delete", pattern="x")])
