"""Application bundle metadata from Info.plist.

A bundle is a directory such as ``Safari.app`` with the layout::

    Safari.app/Contents/Info.plist
    Safari.app/Contents/MacOS/Safari
    Safari.app/Contents/Resources/<lang>.lproj/InfoPlist.strings
"""

import plistlib
import re
from dataclasses import dataclass
from pathlib import Path

import structlog

log = structlog.get_logger()

# Localizations tried for the display name, in order
LOCALIZATIONS = ("en", "English", "Base")

# Old-style text .strings line: "CFBundleDisplayName" = "Safari";
_STRINGS_LINE = re.compile(r'^\s*"?(\w+)"?\s*=\s*"((?:[^"\\]|\\.)*)"\s*;', re.MULTILINE)

# Executable inside a bundle: <bundle>.app/Contents/MacOS/<exe>
_EXECUTABLE_IN_BUNDLE = re.compile(r"^(.+?\.app)/Contents/MacOS/[^/]+$")


@dataclass(frozen=True)
class BundleInfo:
    """Metadata resolved from one bundle's Info.plist."""

    path: str
    identifier: str | None
    name: str | None  # Localized or plain display name, else CFBundleName
    version: str | None
    icon_path: str | None
    background_only: bool  # LSBackgroundOnly
    ui_element: bool  # LSUIElement (menu bar agents, no Dock icon)


def _truthy(value: object) -> bool:
    """Interpret plist booleans, which are sometimes stored as strings or ints."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "yes", "true"}
    return bool(value)


def _string(value: object) -> str | None:
    """Return a non-empty stripped string, else None."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _read_strings_file(path: Path) -> dict[str, str]:
    """Read an InfoPlist.strings file (binary/XML plist or old-style text)."""
    data = path.read_bytes()
    try:
        parsed = plistlib.loads(data)
    except (plistlib.InvalidFileException, ValueError):
        parsed = None
    if isinstance(parsed, dict):
        return {k: v for k, v in parsed.items() if isinstance(v, str)}

    for encoding in ("utf-16", "utf-8"):
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        entries = dict(_STRINGS_LINE.findall(text))
        if entries:
            return entries
    return {}


def _localized_display_name(contents: Path) -> str | None:
    """Look up CFBundleDisplayName in the bundle's localized strings."""
    resources = contents / "Resources"
    for lang in LOCALIZATIONS:
        strings_path = resources / f"{lang}.lproj" / "InfoPlist.strings"
        try:
            strings = _read_strings_file(strings_path)
        except OSError:
            continue
        name = _string(strings.get("CFBundleDisplayName"))
        if name:
            return name
    return None


def _icon_path(contents: Path, icon_file: object) -> str | None:
    """Resolve CFBundleIconFile to a path under Contents/Resources."""
    icon_name = _string(icon_file)
    if icon_name is None:
        return None
    if not Path(icon_name).suffix:
        icon_name += ".icns"
    return str(contents / "Resources" / icon_name)


def read_bundle_info(bundle: Path) -> BundleInfo | None:
    """Read metadata for a bundle directory.

    Returns:
        BundleInfo, or None if the bundle has no readable Info.plist.
        Individual keys may still be missing (None) in the result.
    """
    contents = bundle / "Contents"
    try:
        with open(contents / "Info.plist", "rb") as f:
            plist = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ValueError) as e:
        log.debug("bundle_plist_unreadable", bundle=str(bundle), error=str(e))
        return None
    if not isinstance(plist, dict):
        return None

    name = (
        _localized_display_name(contents)
        or _string(plist.get("CFBundleDisplayName"))
        or _string(plist.get("CFBundleName"))
    )

    return BundleInfo(
        path=str(bundle),
        identifier=_string(plist.get("CFBundleIdentifier")),
        name=name,
        version=_string(plist.get("CFBundleShortVersionString")),
        icon_path=_icon_path(contents, plist.get("CFBundleIconFile")),
        background_only=_truthy(plist.get("LSBackgroundOnly", False)),
        ui_element=_truthy(plist.get("LSUIElement", False)),
    )


def enclosing_bundle(executable: str | None) -> Path | None:
    """Return the bundle directory an executable was launched from.

    Only the standard ``<bundle>.app/Contents/MacOS/<exe>`` layout counts;
    helper tools elsewhere inside a bundle are not applications.
    """
    if not executable:
        return None
    match = _EXECUTABLE_IN_BUNDLE.match(executable)
    if match is None:
        return None
    return Path(match.group(1))
