"""Aggregation, ranking and growth helpers.

These routines fold fact rows into grouped sums, rank the home chain among its
peers inside each group, and compare a date window with the equal-length
window that precedes it. They are pure functions over rows that were already
fetched, so they can be recomputed on every filter or date change.
"""
