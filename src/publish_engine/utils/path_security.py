"""Security utilities for profile path validation and sanitization.

Profile identifiers arrive from the caller and end up as directory names under the
profiles root, so they are sanitized before touching the file system.
"""

import re
from pathlib import Path


def sanitize_profile_name(name: str) -> str:
    """Sanitize profile name to prevent path traversal.

    Args:
        name: Profile identifier from the caller

    Returns:
        Sanitized profile name safe for use in file paths

    Examples:
        >>> sanitize_profile_name("douyin-1")
        'douyin-1'
        >>> sanitize_profile_name("../../../etc/passwd")
        'etcpasswd'
        >>> sanitize_profile_name("")
        'default'
    """
    if not name:
        return "default"

    clean = name.replace("..", "")
    clean = re.sub(r'[<>:"|?*\\/]', "", clean)
    clean = re.sub(r"[^a-zA-Z0-9_.-]+", "_", clean)
    clean = clean.strip(".")

    return clean or "default"


def resolve_profile_dir(profiles_root: Path, profile: str) -> Path:
    """Return the profile directory, guaranteed to live inside ``profiles_root``.

    An absolute path that already sits inside the root is accepted as-is so callers
    holding a stored profile directory can pass it straight through.

    Raises:
        ValueError: If the resulting path escapes the profiles root
    """
    root = Path(profiles_root).expanduser().resolve()
    candidate = Path(profile).expanduser()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / sanitize_profile_name(profile)).resolve()

    if not resolved.is_relative_to(root):
        raise ValueError(f"Profile directory must be within {root}: {profile}")
    return resolved


def profile_dir_name(platform: str, account_index: int) -> str:
    """Directory name for a platform account profile, e.g. ``douyin-2``."""
    return f"{sanitize_profile_name(platform)}-{int(account_index)}"


def next_profile_index(profiles_root: Path, platform: str) -> int:
    """Next free account index for ``platform`` under the profiles root."""
    prefix = f"{sanitize_profile_name(platform)}-"
    max_index = 0
    root = Path(profiles_root)
    if not root.exists():
        return 1
    for entry in root.iterdir():
        if not entry.is_dir() or not entry.name.startswith(prefix):
            continue
        suffix = entry.name[len(prefix) :]
        if suffix.isdigit():
            max_index = max(max_index, int(suffix))
    return max_index + 1
