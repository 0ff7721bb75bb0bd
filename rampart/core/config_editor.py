"""Line-oriented editing of configuration files.

:func:`set_config` is the key/value setter used for ``pwquality.conf``,
``login.defs`` and friends. :func:`apply_edits` covers the sed-style changes
(substitutions, deletions, insertions) made to PAM, logrotate, rsyslog and
similar files. Both work on text first so they can be tested without a disk.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Tuple

from rampart.core.errors import ResourceMissing
from rampart.core.filesystem import Filesystem


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Separator:
    """How a key is separated from its value.

    ``pattern`` matches the separator of an existing line; ``text`` is used
    when a new line has to be appended.
    """

    pattern: str
    text: str


EQUALS = Separator(pattern=r"[ \t]*=[ \t]*", text=" = ")
WHITESPACE = Separator(pattern=r"[ \t]+", text="   ")

SEPARATORS = {"equals": EQUALS, "whitespace": WHITESPACE}


def _lines(text: str) -> List[str]:
    """Split ``text`` after each ``\\n`` only, keeping the line endings.

    Form feeds and the other characters :meth:`str.splitlines` treats as
    breaks stay inside their line.
    """

    return [line for line in re.split(r"(?<=\n)", text) if line]


def _split_ending(line: str) -> Tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def update_setting(
    text: str,
    key: str,
    value: str,
    separator: Separator = EQUALS,
    *,
    match_commented: bool = False,
) -> Tuple[str, str]:
    """Return ``text`` with ``key`` set to ``value`` and what happened.

    The status is ``"updated"``, ``"added"`` or ``"unchanged"``. The first
    matching line keeps its key and separator; any later match is dropped so
    the key appears exactly once.
    """

    if "\n" in value or "\r" in value:
        raise ValueError(f"Value for {key!r} must be a single line")

    prefix = r"^[ \t]*#*[ \t]*" if match_commented else "^"
    matcher = re.compile(prefix + "(" + re.escape(key) + separator.pattern + ")")

    result: List[str] = []
    found = False
    status = "unchanged"
    for line in _lines(text):
        body, ending = _split_ending(line)
        match = matcher.match(body)
        if match is None:
            result.append(line)
            continue
        if found:
            status = "updated"
            continue

        found = True
        # Plain concatenation keeps the value literal.
        replaced = match.group(1) + value
        if replaced != body:
            status = "updated"
        result.append(replaced + ending)

    if not found:
        if result and not result[-1].endswith("\n"):
            result[-1] += "\n"
        result.append(f"{key}{separator.text}{value}\n")
        status = "added"

    return "".join(result), status


def set_config(
    fs: Filesystem,
    resource: str,
    key: str,
    value: str,
    separator: Separator = EQUALS,
    *,
    match_commented: bool = False,
    create_missing: bool = False,
    dry_run: bool = False,
) -> str:
    """Set ``key`` to ``value`` in ``resource`` and return the status."""

    if fs.exists(resource):
        current = fs.read_text(resource)
    elif create_missing:
        current = ""
    else:
        raise ResourceMissing(resource, f"Cannot set '{key}': {resource} does not exist")

    updated, status = update_setting(current, key, value, separator, match_commented=match_commented)
    if status == "unchanged":
        logger.debug("'%s' already set in %s", key, resource)
        return status

    if dry_run:
        logger.info("Dry-run: would set '%s' in %s (%s)", key, resource, status)
        return status

    fs.write_text(resource, updated)
    logger.info("%s '%s' in %s", "Added" if status == "added" else "Updated", key, resource)
    return status


class LineEditLike(Protocol):
    action: str
    pattern: Optional[str]
    replacement: str
    line: Optional[str]
    within: Optional[str]
    unless: Optional[str]


def _selected(body: str, edit: LineEditLike) -> bool:
    if edit.within is not None and re.search(edit.within, body) is None:
        return False
    if edit.unless is not None and re.search(edit.unless, body) is not None:
        return False
    return True


def apply_edit(text: str, edit: LineEditLike) -> str:
    """Apply one line edit to ``text``."""

    lines = _lines(text)
    pattern = re.compile(edit.pattern) if edit.pattern is not None else None

    if edit.action == "substitute":
        out = []
        for line in lines:
            body, ending = _split_ending(line)
            if _selected(body, edit):
                body = pattern.sub(edit.replacement, body)
            out.append(body + ending)
        return "".join(out)

    if edit.action == "delete":
        kept = []
        for line in lines:
            body = _split_ending(line)[0]
            if pattern.search(body) and _selected(body, edit):
                continue
            kept.append(line)
        return "".join(kept)

    if edit.action == "insert_before":
        out = []
        for line in lines:
            body = _split_ending(line)[0]
            if pattern.search(body) and not (out and _split_ending(out[-1])[0] == edit.line):
                out.append(edit.line + "\n")
            out.append(line)
        return "".join(out)

    if edit.action == "insert_after":
        out = []
        for index, line in enumerate(lines):
            body, ending = _split_ending(line)
            out.append(body + (ending or "\n") if pattern.search(body) else line)
            following = _split_ending(lines[index + 1])[0] if index + 1 < len(lines) else None
            if pattern.search(body) and following != edit.line:
                out.append(edit.line + "\n")
        return "".join(out)

    if edit.action == "append_if_missing":
        probe = pattern or re.compile("^" + re.escape(edit.line) + "$")
        if any(probe.search(_split_ending(line)[0]) for line in lines):
            return text
        if lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        lines.append(edit.line + "\n")
        return "".join(lines)

    raise ValueError(f"Unsupported line edit action: {edit.action}")


def apply_edits(text: str, edits: Iterable[LineEditLike]) -> str:
    for edit in edits:
        text = apply_edit(text, edit)
    return text


def edit_file(
    fs: Filesystem,
    resource: str,
    edits: Iterable[LineEditLike],
    *,
    dry_run: bool = False,
) -> bool:
    """Apply ``edits`` to ``resource``; return ``True`` when its content changed."""

    if not fs.exists(resource):
        raise ResourceMissing(resource)

    current = fs.read_text(resource)
    updated = apply_edits(current, edits)
    if updated == current:
        logger.debug("No line edits needed for %s", resource)
        return False

    if dry_run:
        logger.info("Dry-run: would edit %s", resource)
        return True

    fs.write_text(resource, updated)
    logger.info("Edited %s", resource)
    return True


__all__ = [
    "EQUALS",
    "SEPARATORS",
    "Separator",
    "WHITESPACE",
    "apply_edit",
    "apply_edits",
    "edit_file",
    "set_config",
    "update_setting",
]
