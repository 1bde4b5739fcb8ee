"""Country identifier adapter.

Map data identifies countries by ISO-3166 numeric code; fact rows store
2-letter codes; tables and tooltips show a display name. Everything that needs
to compare or look up a country goes through this module.
"""

from __future__ import annotations

from typing import Iterator, Mapping, TypeVar

T = TypeVar("T")

# Static mapping of the numeric codes emitted by the world map
NUMERIC_TO_ALPHA2 = {
    "840": "US",
    "124": "CA",
    "826": "GB",
    "276": "DE",
    "250": "FR",
    "036": "AU",
    "36": "AU",
    "392": "JP",
    "356": "IN",
    "156": "CN",
    "076": "BR",
    "76": "BR",
}

ALPHA2_TO_NAME = {
    "US": "United States",
    "CA": "Canada",
    "GB": "United Kingdom",
    "DE": "Germany",
    "FR": "France",
    "AU": "Australia",
    "JP": "Japan",
    "IN": "India",
    "CN": "China",
    "BR": "Brazil",
    "ES": "Spain",
    "NL": "Netherlands",
    "RU": "Russia",
    "TR": "Turkey",
    "KR": "South Korea",
    "NG": "Nigeria",
    "ZA": "South Africa",
    "NZ": "New Zealand",
}


def to_alpha2(code: str | int | None) -> str:
    """Return the 2-letter code for a numeric ISO code.

    Codes outside the table (including 2-letter codes and names) pass through
    unchanged apart from surrounding whitespace.

    Args:
        code: Numeric ISO-3166 code, 2-letter code or free text.

    Returns:
        The mapped 2-letter code, or the input as a string.
    """
    if code is None:
        return ""
    text = str(code).strip()
    return NUMERIC_TO_ALPHA2.get(text, text)


def country_name(code: str | int | None) -> str:
    """Return the display name for a numeric or 2-letter code, else the code."""
    alpha2 = to_alpha2(code)
    return ALPHA2_TO_NAME.get(alpha2.upper(), alpha2)


def country_candidates(code: str | int | None) -> list[str]:
    """Identifiers to try, in order, when resolving a country for display.

    The display name comes first, then the 2-letter code, then the raw input;
    duplicates (compared case-insensitively) are dropped.
    """
    raw = "" if code is None else str(code).strip()
    out: list[str] = []
    seen: set[str] = set()
    for candidate in (country_name(raw), to_alpha2(raw), raw):
        folded = candidate.casefold()
        if candidate and folded not in seen:
            seen.add(folded)
            out.append(candidate)
    return out


def same_country(a: str | int | None, b: str | int | None) -> bool:
    """Case-insensitive comparison after numeric codes are mapped to alpha-2."""
    left = {c.casefold() for c in country_candidates(a)}
    right = {c.casefold() for c in country_candidates(b)}
    return bool(left & right)


def _iter_matches(buckets: Mapping[str, T], candidate: str) -> Iterator[T]:
    folded = candidate.casefold()
    for key, value in buckets.items():
        if str(key).strip().casefold() == folded:
            yield value


def resolve_bucket(buckets: Mapping[str, T], code: str | int | None) -> T | None:
    """Look up a per-country bucket by name first, then by 2-letter code.

    Args:
        buckets: Mapping keyed by whatever country identifier the source used.
        code: Identifier supplied by the map or by the user.

    Returns:
        The first bucket matching a candidate identifier, or None.
    """
    for candidate in country_candidates(code):
        for value in _iter_matches(buckets, candidate):
            return value
    return None
