"""Competitive ranking of one peer inside a PeerValueMap.

The rank of a subject is one plus the number of peers with a strictly greater
value, i.e. pandas `rank(method="min", ascending=False)`. Ties are not
renumbered: every tied peer reports the same rank, and the next distinct
value is not shifted down to close the gap.
"""

from __future__ import annotations

from typing import Mapping, TypeVar

import pandas as pd

G = TypeVar("G")


def _fold(peer: str) -> str:
    return peer.strip().casefold()


def subject_value(peer_values: Mapping[str, float], subject: str) -> float | None:
    """Return the subject's value, matching peer ids case-insensitively.

    Args:
        peer_values: Mapping of peer id → summed value.
        subject: Peer id to look up (e.g. the home chain).

    Returns:
        The value of the first case-insensitive match, or None when absent.
    """
    folded = _fold(subject)
    for peer, value in peer_values.items():
        if _fold(peer) == folded:
            return value
    return None


def rank(peer_values: Mapping[str, float], subject: str) -> int:
    """Return the 1-based rank of `subject` among `peer_values`.

    `rank = 1 + count(peer values strictly greater than the subject's value)`;
    a subject with no case-insensitive match counts as 0. An empty peer set
    ranks 1, which carries no comparative meaning (see `has_comparison`).
    """
    value = subject_value(peer_values, subject)
    if value is None:
        value = 0.0
    # The subject's value is ranked as one extra entry; equal values share its rank
    values = pd.Series([*peer_values.values(), value], dtype="float64")
    return int(values.rank(method="min", ascending=False).iloc[-1])


def rank_global(peer_values: Mapping[str, float], subject: str) -> int:
    """Rank for "within all chains" views.

    Same as `rank`, except that a subject with no representation in a
    non-empty peer set reports the peer count instead of a position past it.
    """
    if peer_values and subject_value(peer_values, subject) is None:
        return len(peer_values)
    return rank(peer_values, subject)


def rank_groups(
    group_peer_values: Mapping[G, Mapping[str, float]],
    subject: str,
) -> dict[G, int]:
    """Rank the subject inside every group (e.g. per country, per category).

    All groups are ranked in one `groupby(...).rank()` pass; groups where the
    subject has no value fall back to `rank` (value 0).

    Returns:
        Dict of group → rank, in the input group order.
    """
    groups = list(group_peer_values)
    long = pd.DataFrame(
        [
            (gid, peer, float(value))
            for gid, group in enumerate(groups)
            for peer, value in group_peer_values[group].items()
        ],
        columns=["group", "peer", "value"],
    )
    found: dict[int, int] = {}
    if not long.empty:
        long["rank"] = long.groupby("group", sort=False)["value"].rank(method="min", ascending=False)
        hits = long[long["peer"].map(_fold) == _fold(subject)].drop_duplicates("group")
        found = {int(g): int(r) for g, r in zip(hits["group"], hits["rank"])}

    return {
        group: found[gid] if gid in found else rank(group_peer_values[group], subject)
        for gid, group in enumerate(groups)
    }


def has_comparison(peer_values: Mapping[str, float]) -> bool:
    """True when a rank is worth displaying (more than one peer)."""
    return len(peer_values) > 1
