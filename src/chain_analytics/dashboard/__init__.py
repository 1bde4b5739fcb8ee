"""Dashboard-side coordination.

Holds the selection state, the cross-filter rules for the growth cards, the
dual-thumb date slider, and the builders that turn fetched rows into the
view-models the Streamlit app renders.
"""
