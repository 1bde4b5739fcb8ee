"""PostgREST (Supabase) row source.

Uses the REST filter grammar: `date=gte.<day>`, `date=lte.<day>` and
`<column>=ilike.<value>` for the case-insensitive string filters. Results are
read page by page because hosted PostgREST caps the rows per response.
"""

from __future__ import annotations

import logging
from typing import Any

import requests  # type: ignore[import-untyped]

from chain_analytics.aggregate.country_codes import to_alpha2
from chain_analytics.ingest.row_source import RowQuery, RowSourceError, to_fact_rows
from chain_analytics.models import FactRow

log = logging.getLogger(__name__)


def build_params(query: RowQuery) -> list[tuple[str, str]]:
    """Return query-string parameters for a RowQuery (repeated keys allowed)."""
    params = [
        ("select", "*"),
        ("date", f"gte.{query.start.isoformat()}"),
        ("date", f"lte.{query.end.isoformat()}"),
    ]
    filters = {
        "chain": query.chain,
        "country": to_alpha2(query.country) if query.country else None,
        "category": query.category,
        "dapp_name": query.dapp_name,
    }
    for column, value in filters.items():
        if value and value.strip():
            params.append((column, f"ilike.{value.strip()}"))
    return params


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:200]}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status_code}"


class PostgrestRowSource:
    """Row source reading a PostgREST table over HTTP.

    Args:
        base_url: Project URL (e.g. `https://<project>.supabase.co`).
        api_key: Key sent as `apikey` and bearer token.
        table: Table holding the rows.
        model: Row model the records are validated into.
        page_size: Rows requested per page.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str,
        model: type[FactRow] = FactRow,
        page_size: int = 1000,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.model = model
        self.page_size = page_size
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/json"}
        if api_key:
            self.headers["apikey"] = api_key
            self.headers["Authorization"] = f"Bearer {api_key}"

    def _page(self, params: list[tuple[str, str]], offset: int) -> list[dict[str, Any]]:
        paged = params + [("limit", str(self.page_size)), ("offset", str(offset))]
        try:
            resp = self.session.get(self.url, params=paged, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("Fact request to %s failed: %s", self.url, e)
            raise RowSourceError(str(e)) from e
        if resp.status_code >= 400:
            message = _error_message(resp)
            log.warning("Fact request to %s returned %d: %s", self.url, resp.status_code, message)
            raise RowSourceError(message)
        return resp.json()

    def fetch(self, query: RowQuery) -> list[FactRow]:
        params = build_params(query)
        records: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = self._page(params, offset)
            records.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size

        rows, _ = to_fact_rows(records, self.model)
        log.debug("Fetched %d fact rows from %s", len(rows), self.url)
        return rows
