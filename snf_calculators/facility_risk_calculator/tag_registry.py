"""Citation tag normalization and registry lookup.

Survey data spells the same citation many ways: "880", "F880", "F0880",
"F-0880", "f 880". All of them resolve to the single registry entry keyed by
prefix + 4-digit number ("F0880"). Bare numbers are tried under F first, then
E, because F-tags dominate the reference set.

Lookups never fail: unknown tags resolve to an "Unknown Tag" definition that
carries the raw input, and empty input resolves to a placeholder.
"""

import re
from typing import Any

from snf_calculators.facility_risk_calculator.models import CitationDefinition
from snf_calculators.facility_risk_calculator.table_loader import load_citation_definitions

# Prefixes tried, in order, for tags given as a bare number
BARE_NUMBER_PREFIXES = ("F", "E")

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_PREFIXED = re.compile(r"^([A-Z])(\d+)$")

NO_DEFINITION = CitationDefinition(
    tag="",
    name="Unknown",
    description="No definition available",
    category="Unknown",
    prefix="",
)


def _clean(raw: Any) -> str:
    return _NON_ALNUM.sub("", str(raw)).upper()


def _candidate_codes(cleaned: str) -> list[str]:
    """Registry keys to try for a cleaned tag, in priority order."""
    if not cleaned:
        return []

    candidates: list[str] = []
    if cleaned[0].isdigit():
        padded = cleaned.zfill(4)
        candidates.extend(prefix + padded for prefix in BARE_NUMBER_PREFIXES)

    candidates.append(cleaned)

    match = _PREFIXED.match(cleaned)
    if match:
        candidates.append(match.group(1) + match.group(2).zfill(4))

    return candidates


def resolve_tag(raw_tag: Any) -> CitationDefinition:
    """Resolve a loosely formatted citation tag to its registry definition.

    Args:
        raw_tag: Tag in any format ("880", "F880", "F0880", "F-0880"), any case

    Returns:
        The registry definition; an "Unknown Tag" definition carrying the raw
        input when nothing matches; NO_DEFINITION for empty input
    """
    if not raw_tag:
        return NO_DEFINITION

    definitions = load_citation_definitions()
    for code in _candidate_codes(_clean(raw_tag)):
        if code in definitions:
            return definitions[code]

    raw_text = str(raw_tag)
    stripped = raw_text.strip()
    return CitationDefinition(
        tag=raw_text,
        name="Unknown Tag",
        description="No definition available for this tag",
        category="Unknown",
        prefix=stripped[:1].upper(),
    )


def normalize_tag_code(raw_tag: Any) -> str | None:
    """Canonical registry-style code for a tag, whether or not it is registered.

    Registered tags return their registry key. Unregistered tags still get a
    canonical form when they look like a tag (letter + digits, or bare digits
    under the F prefix), so they can be grouped and mapped to clinical systems.

    Returns:
        Code such as 'F0880', or None when the input cannot be a tag
    """
    if not raw_tag:
        return None

    cleaned = _clean(raw_tag)
    definitions = load_citation_definitions()
    candidates = _candidate_codes(cleaned)
    for code in candidates:
        if code in definitions:
            return code

    if cleaned and cleaned.isdigit():
        return BARE_NUMBER_PREFIXES[0] + cleaned.zfill(4)

    match = _PREFIXED.match(cleaned)
    if match:
        return match.group(1) + match.group(2).zfill(4)

    return None


def format_tag(raw_tag: Any) -> str:
    """Display tag for any input (e.g., "880" -> "F-0880")."""
    definition = resolve_tag(raw_tag)
    return definition.tag or ("" if raw_tag is None else str(raw_tag))


def tag_display_name(raw_tag: Any) -> str:
    """Short display name, e.g. "F-0880 - Provide and implement an infection pr..."."""
    definition = resolve_tag(raw_tag)
    name = definition.name
    short_name = name[:37] + "..." if len(name) > 40 else name
    return f"{definition.tag} - {short_name}"
