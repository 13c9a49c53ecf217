"""R DESCRIPTION file parsing and round-trip-safe rewriting."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from .errors import ParseError
from .models import Manifest, ManifestEntry, ManifestSection

log = structlog.get_logger("depsync.description")

DEPENDENCY_FIELDS = {
    "Depends": ManifestSection.REQUIRED,
    "Imports": ManifestSection.REQUIRED,
    "Suggests": ManifestSection.OPTIONAL,
}
DECLARED_FIELD = "Imports"

_FIELD_RE = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._@/-]*)\s*:")
_ITEM_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9.]*)\s*(?:\((.*)\))?\s*$", re.DOTALL)


@dataclass
class _Field:
    name: str
    start: int  # first line index
    end: int  # one past the last line index
    header: int  # length of "Name:" on the first line


class DescriptionParser:
    """Parser for DCF formatted DESCRIPTION files."""

    def __init__(self):
        # Lines that belong to no field
        self.skip_patterns = [
            r"^\s*$",  # Blank lines
            r"^#",  # Comments
        ]

    def _should_skip_line(self, line: str) -> bool:
        return any(re.match(pattern, line) for pattern in self.skip_patterns)

    def fields(self, raw: str, path: Path | None = None) -> tuple[list[str], list[_Field]]:
        """Split a DCF document into lines and field spans."""
        lines = raw.splitlines(keepends=True)
        fields: list[_Field] = []
        current: _Field | None = None

        for index, line in enumerate(lines):
            if self._should_skip_line(line):
                current = None
                continue

            if line[0] in " \t":
                if current is None:
                    raise ParseError(path, f"line {index + 1}: continuation line outside a field")
                current.end = index + 1
                continue

            match = _FIELD_RE.match(line)
            if not match:
                raise ParseError(path, f"line {index + 1}: expected 'Field: value'")
            current = _Field(match.group(1), index, index + 1, match.end())
            fields.append(current)

        return lines, fields

    def _parse_items(self, value: str, field_name: str, section: ManifestSection) -> list[ManifestEntry]:
        entries = []
        for start, end in split_items(value):
            item = value[start:end]
            if not item.strip():
                continue
            match = _ITEM_RE.match(item)
            if not match:
                log.warning("description.malformed_item", field=field_name, item=item.strip())
                continue
            name = match.group(1)
            if name == "R":
                continue
            constraint = match.group(2)
            if constraint is not None:
                constraint = " ".join(constraint.split())
            entries.append(ManifestEntry(name, constraint or None, section, field_name))
        return entries

    def parse(self, raw: str, path: Path | None = None) -> Manifest:
        """Parse DESCRIPTION content into a Manifest."""
        lines, fields = self.fields(raw, path)
        names = [field.name for field in fields]
        if DECLARED_FIELD not in names:
            raise ParseError(path, f"no '{DECLARED_FIELD}:' field found")

        entries: list[ManifestEntry] = []
        seen: set[tuple[str, ManifestSection]] = set()
        package_name = None

        for field in fields:
            value = field_value(lines, field)
            if field.name == "Package":
                package_name = value.strip() or None
                continue

            section = DEPENDENCY_FIELDS.get(field.name)
            if section is None:
                continue

            for entry in self._parse_items(value, field.name, section):
                key = (entry.name, entry.section)
                if key in seen:
                    continue
                seen.add(key)
                entries.append(entry)

        return Manifest(path=path, raw=raw, entries=entries, package_name=package_name)


def field_value(lines: list[str], field: _Field) -> str:
    text = "".join(lines[field.start:field.end])
    return text[field.header:]


def split_items(value: str) -> list[tuple[int, int]]:
    """Return spans of comma separated items, ignoring commas inside parentheses."""
    spans = []
    depth = 0
    start = 0
    for index, char in enumerate(value):
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            spans.append((start, index))
            start = index + 1
    spans.append((start, len(value)))
    return spans


def _item_name(item: str) -> str | None:
    match = _ITEM_RE.match(item)
    return match.group(1) if match else None


def _remove_item(value: str, name: str) -> str:
    spans = split_items(value)
    for position, (start, end) in enumerate(spans):
        if _item_name(value[start:end]) != name:
            continue
        if position < len(spans) - 1:
            # Drop the item together with the comma that follows it
            return value[:start] + value[end + 1:]
        segment = value[start:end]
        trailing = segment[len(segment.rstrip()):]
        if position == 0:
            return trailing
        return value[:start - 1] + trailing
    return value


def _leading_whitespace(segment: str) -> str:
    lead = segment[: len(segment) - len(segment.lstrip())]
    if "\n" not in lead:
        return lead or " "
    newline = "\r\n" if "\r\n" in lead else "\n"
    return newline + lead.rsplit("\n", 1)[1]


def _append_items(value: str, names: list[str]) -> str:
    core = value.rstrip()
    trailing = value[len(core):]
    spans = [(s, e) for s, e in split_items(core) if core[s:e].strip()]

    if not spans:
        return " " + ", ".join(names) + trailing

    start, end = spans[-1]
    lead = _leading_whitespace(core[start:end])

    if core.endswith(","):
        return core + "".join(f"{lead}{name}," for name in names) + trailing
    return core + "".join(f",{lead}{name}" for name in names) + trailing


def render_description(
    manifest: Manifest,
    add: Iterable[str] = (),
    remove: Iterable[str] = (),
) -> str:
    """Produce updated DESCRIPTION text.

    New names are appended to the end of ``Imports:`` in the field's existing
    layout; names are removed only when passed in ``remove``. Every other
    byte of the original document is kept.

    Args:
        manifest: Parsed manifest holding the original raw text
        add: Package names to declare in Imports
        remove: Package names to drop from Imports

    Returns:
        The new document text (``manifest.raw`` when nothing changes)
    """
    parser = DescriptionParser()
    lines, fields = parser.fields(manifest.raw, manifest.path)
    target = next((field for field in fields if field.name == DECLARED_FIELD), None)
    if target is None:
        raise ParseError(manifest.path, f"no '{DECLARED_FIELD}:' field found")

    value = field_value(lines, target)
    declared = {
        _item_name(value[s:e]) for s, e in split_items(value) if value[s:e].strip()
    }
    to_remove = [name for name in dict.fromkeys(remove) if name in declared]
    to_add = [name for name in dict.fromkeys(add) if name not in declared]
    if not to_add and not to_remove:
        return manifest.raw

    for name in to_remove:
        value = _remove_item(value, name)
    if to_add:
        value = _append_items(value, to_add)

    header = lines[target.start][: target.header]
    return "".join(lines[: target.start]) + header + value + "".join(lines[target.end:])


def parse_description(content: str, path: Path | None = None) -> Manifest:
    """Parse DESCRIPTION content into a Manifest.

    Args:
        content: The DESCRIPTION file content
        path: Optional path used in error messages

    Returns:
        Parsed Manifest object
    """
    parser = DescriptionParser()
    return parser.parse(content, path)


def read_description(path: Path) -> Manifest:
    try:
        with path.open(encoding="utf-8", newline="") as handle:
            content = handle.read()
    except FileNotFoundError as exc:
        raise ParseError(path, "file not found") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(path, f"unreadable: {exc}") from exc
    return parse_description(content, path)
