"""Cleaning utilities for fact exports.

Provides functions to normalize raw fact columns (dimensions, numeric facts,
dates) on Dask DataFrames before they are validated and loaded into a store.
"""
