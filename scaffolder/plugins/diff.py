"""Line diffs for dry-run previews."""

import difflib
from pathlib import Path


def unified_diff(path: str | Path, before: str, after: str) -> str:
    """
    Unified diff between two versions of a file.

    Example:
        >>> print(unified_diff("README.md", "a\\n", "b\\n"))
        --- a/README.md
        +++ b/README.md
        @@ -1 +1 @@
        -a
        +b
    """
    lines = difflib.unified_diff(
        before.splitlines(),
        after.splitlines(),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        lineterm="",
    )
    diff = "\n".join(lines)
    return diff or f"No changes to {path}"


def read_text_or_empty(path: Path) -> str:
    """Current content of ``path``, or an empty string if it does not exist."""
    if not path.is_file():
        return ""
    return path.read_text(encoding="utf-8")


def file_diff(path: Path, after: str, label: str | Path | None = None) -> str:
    """Diff the file at ``path`` against new content."""
    before = read_text_or_empty(path)
    name = label or path.name
    if not path.exists():
        return f"Create {name}\n" + unified_diff(name, "", after)
    return unified_diff(name, before, after)
