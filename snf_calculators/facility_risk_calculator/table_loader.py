"""Load the static reference tables shipped with the calculator.

Tables (JSON, under reference_tables/):
    - citation_definitions.json: CMS citation tag registry
      (source: NH_CitationDescriptions_Oct2025.csv, 643 definitions)
    - clinical_systems.json: clinical systems and the F-tags that roll up to each

Tables are read once per process and cached. Callers share the cached
objects; every entry is a frozen model, so nothing can be mutated in place.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from snf_calculators.facility_risk_calculator.models import CitationDefinition, ClinicalSystem

# Base directory for reference tables
DATA_DIR = Path(__file__).parent / "reference_tables"

# Cache loaded tables
_CACHE: dict[str, Any] = {}


def _read_table(name: str) -> list[dict[str, Any]]:
    path = DATA_DIR / name
    if not path.exists():
        raise FileNotFoundError(f"Reference table not found: {path}")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_citation_definitions() -> Mapping[str, CitationDefinition]:
    """Load the citation registry from citation_definitions.json.

    Returns:
        Read-only mapping from normalized code (prefix + 4-digit number,
        e.g. 'F0880') to its CitationDefinition
    """
    cache_key = "citation_definitions"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    definitions: dict[str, CitationDefinition] = {}
    for row in _read_table("citation_definitions.json"):
        code = str(row["code"]).strip().upper()
        definitions[code] = CitationDefinition(
            tag=str(row["tag"]).strip(),
            name=str(row["name"]).strip(),
            description=str(row.get("description") or "").strip(),
            category=str(row.get("category") or "Unknown").strip(),
            prefix=str(row.get("prefix") or code[:1]).strip(),
        )

    registry = MappingProxyType(definitions)
    _CACHE[cache_key] = registry
    return registry


def load_clinical_systems() -> tuple[ClinicalSystem, ...]:
    """Load clinical systems from clinical_systems.json.

    Returns:
        Systems ordered by system number; each carries its normalized tag codes
    """
    cache_key = "clinical_systems"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    systems = [
        ClinicalSystem(
            system_number=int(row["system_number"]),
            system_name=str(row["system_name"]).strip(),
            tags=tuple(str(t).strip().upper() for t in row.get("tags", [])),
        )
        for row in _read_table("clinical_systems.json")
    ]
    systems.sort(key=lambda s: s.system_number)

    result = tuple(systems)
    _CACHE[cache_key] = result
    return result


def load_tag_to_system() -> Mapping[str, int]:
    """Map each normalized tag code to the number of the system it belongs to."""
    cache_key = "tag_to_system"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    tag_to_system: dict[str, int] = {}
    for system in load_clinical_systems():
        for tag in system.tags:
            tag_to_system.setdefault(tag, system.system_number)

    result = MappingProxyType(tag_to_system)
    _CACHE[cache_key] = result
    return result


def clear_cache() -> None:
    """Clear the table cache."""
    _CACHE.clear()
