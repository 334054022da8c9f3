"""Line diffs for round-trip reports"""

import difflib


def _lines(text: str) -> list[str]:
    return [line + "\n" for line in text.rstrip().splitlines()]


def diff_summary(old: str, new: str) -> dict[str, int]:
    """Return added/deleted/unchanged line counts between two texts."""
    matcher = difflib.SequenceMatcher(None, old.splitlines(), new.splitlines())
    counts = {"added": 0, "deleted": 0, "unchanged": 0}
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            counts["unchanged"] += i2 - i1
            continue
        if tag in ("replace", "delete"):
            counts["deleted"] += i2 - i1
        if tag in ("replace", "insert"):
            counts["added"] += j2 - j1
    return counts


def unified_diff(
    original: str,
    roundtrip: str,
    from_label: str = "original",
    to_label: str = "roundtrip",
    context: int = 3,
    ) -> list[str]:
    """Unified diff lines from original to its round-tripped form; [] when they match.

    Trailing whitespace on the last line is ignored so a missing final newline is not a change.
    """
    return list(difflib.unified_diff(
        _lines(original), _lines(roundtrip),
        fromfile=from_label, tofile=to_label, n=context,
    ))
