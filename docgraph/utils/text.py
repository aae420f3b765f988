"""Small text helpers shared by the ontology resolver and the graph processor."""
import re
from typing import Optional

DEFAULT_RELATIONSHIP_TYPE = "RELATED_TO"


def normalize_key(value: Optional[str]) -> str:
    """Case- and whitespace-folded form used to detect duplicate names and ids."""
    if not value:
        return ""
    return " ".join(str(value).split()).casefold()


def sanitize_relationship_type(rel_type: Optional[str]) -> str:
    """Uppercase identifier usable as a Cypher relationship type."""
    if not rel_type:
        return DEFAULT_RELATIONSHIP_TYPE
    sanitized = re.sub(r"[^A-Z0-9_]", "_", str(rel_type).strip().upper())
    sanitized = re.sub(r"_+", "_", sanitized).strip("_")
    if not sanitized:
        return DEFAULT_RELATIONSHIP_TYPE
    if sanitized[0].isdigit():
        sanitized = f"REL_{sanitized}"
    return sanitized


def count_filled(properties: dict) -> int:
    """Number of properties holding a non-empty value."""
    return sum(1 for value in properties.values() if value not in (None, "", [], {}))
