"""
Subsequent-exposure linking for X-ray practices.

The national nomenclator lists each X-ray study immediately followed by its
"por exposición subsiguiente" variant. Whenever either of the pair is
matched, both are shown and billed together.
"""

from typing import Dict, Iterable, List, Sequence

from .catalog import PracticeEntry
from .numeric import normalize_text

SUBSEQUENT_EXPOSURE_MARKER = "por exposicion subsiguiente"
XRAY_MARKERS = ("radiograf", "rx")


def is_xray(entry: PracticeEntry) -> bool:
    """True if the description names a radiography (accent/case-insensitive)."""
    description = normalize_text(entry.description)
    return any(marker in description for marker in XRAY_MARKERS)


def is_subsequent_exposure(entry: PracticeEntry) -> bool:
    """True if the entry is a "por exposición subsiguiente" variant."""
    return SUBSEQUENT_EXPOSURE_MARKER in normalize_text(entry.description)


def link_subsequent_exposures(
    entry: PracticeEntry,
    catalog: Sequence[PracticeEntry],
) -> List[PracticeEntry]:
    """
    Attach the adjacent principal or subsequent-exposure entry.

    Adjacency is positional within the catalog ordering. If the entry is a
    subsequent-exposure variant its predecessor is placed before it;
    otherwise, if its successor is a variant, the successor is placed after
    it. An entry missing from the catalog is returned alone.

    Args:
        entry: The matched practice
        catalog: Ordered catalog snapshot the entry came from

    Returns:
        One or two entries, in catalog order
    """
    index = next((i for i, candidate in enumerate(catalog) if candidate.key == entry.key), -1)
    if index == -1:
        return [entry]

    if is_subsequent_exposure(entry) and index > 0:
        return [catalog[index - 1], entry]

    if index + 1 < len(catalog) and is_subsequent_exposure(catalog[index + 1]):
        return [entry, catalog[index + 1]]

    return [entry]


def link_matches(
    matches: Iterable[PracticeEntry],
    catalog: Sequence[PracticeEntry],
) -> List[PracticeEntry]:
    """
    Expand search hits with their linked entries.

    Results are de-duplicated by entry key (first occurrence wins) and
    X-ray entries (and their subsequent exposures, so pairs stay together)
    are moved to the front, keeping relative order otherwise.
    """
    unique: Dict[str, PracticeEntry] = {}
    for match in matches:
        for linked in link_subsequent_exposures(match, catalog):
            unique.setdefault(linked.key, linked)

    def xray_first(entry: PracticeEntry) -> int:
        return 0 if is_xray(entry) or is_subsequent_exposure(entry) else 1

    return sorted(unique.values(), key=xray_first)
