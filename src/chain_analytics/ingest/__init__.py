"""Row sources and fact loading.

A row source answers one kind of query: fact rows inside an inclusive date
range, optionally narrowed by chain, country, category and dApp (all compared
case-insensitively). The same contract serves the fact table and its dApp
and dApp-action breakdowns. The engine only consumes rows; loading is provided for
development stores.
"""
