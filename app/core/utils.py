import re

_COURSE_CODE_PATTERN = re.compile(r"^([A-Za-z]+)[\s_-]*(\d+[A-Za-z]?)$")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def normalize_course_code(code: str) -> str:
    """Canonical course code: upper-case, one space between letters and number.

    "cs201", "CS-201" and " cs  201 " all become "CS 201". Codes that do not
    look like LETTERS+NUMBER are upper-cased with whitespace collapsed.
    """
    cleaned = " ".join(code.split())
    match = _COURSE_CODE_PATTERN.match(cleaned)
    if match:
        return f"{match.group(1).upper()} {match.group(2).upper()}"
    return cleaned.upper()


def course_slug(code: str) -> str:
    """Storage path segment for a course code ("CS 201" -> "CS-201")."""
    slug = re.sub(r"[^A-Za-z0-9]+", "-", normalize_course_code(code)).strip("-")
    return slug or "UNSORTED"


def parse_tags(raw: str | list[str] | None) -> list[str]:
    """Split comma-separated tags, trim them and drop blanks and duplicates (first wins)."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    tags: list[str] = []
    for item in items:
        tag = item.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags
