"""chain_analytics package.

Contains the aggregation, ranking and growth-comparison engine behind the
chain usage dashboard, plus the adapters that feed it fact rows and a thin
Streamlit front end.

Architecture:
- Fact rows (date × country × chain × category, optionally broken down by
  dApp and action) are read from a row source (MongoDB, PostgREST or an
  in-memory frame)
- The engine groups rows with pandas, ranks the home chain among its peers and
  compares each window with the equal-length window before it
- Pydantic models validate fact rows and describe every view-model
- Dask is used to clean CSV exports before they are loaded into MongoDB
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
