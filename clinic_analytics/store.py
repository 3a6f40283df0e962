"""
Row Store Adapter Layer

Abstraction over the hosted relational store. The store exposes a REST row
filtering interface (PostgREST dialect) with no server-side joins or
aggregates, so adapters only answer single-table RowQuery reads and
count-only queries.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import requests

from .config import StoreConfig
from .reports.errors import UpstreamQueryError
from .reports.filters import RowQuery, parse_timestamp


class RowStore(ABC):
    """Abstract base class for row store adapters"""

    @abstractmethod
    def select(self, query: RowQuery) -> Iterator[Dict[str, Any]]:
        """Yield rows matching the query"""
        pass

    @abstractmethod
    def count(self, query: RowQuery) -> int:
        """Count rows matching the query without reading them"""
        pass

    def close(self) -> None:
        """Release any held resources"""
        pass


class RestRowStore(RowStore):
    """PostgREST adapter (Supabase REST endpoint)"""

    _CONTENT_RANGE = re.compile(r'^(?:\d+-\d+|\*)/(\d+|\*)$')
    _NEEDS_QUOTES = re.compile(r'[,()"\s:]')

    def __init__(
        self,
        base_url: str,
        api_key: str,
        schema: str = "public",
        timeout: float = 30.0,
        page_size: int = 1000,
        max_in_values: int = 500,
        session_factory: Optional[Callable[[], requests.Session]] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.page_size = max(1, page_size)
        self.max_in_values = max(1, max_in_values)
        self.logger = logging.getLogger(self.__class__.__name__)

        self.headers = {
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Accept': 'application/json',
            'Accept-Profile': schema,
        }
        # requests.Session is not thread-safe; each worker thread gets its own
        self._session_factory = session_factory or requests.Session
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """HTTP session owned by the calling thread"""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._session_factory()
            session.headers.update(self.headers)
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _url(self, query: RowQuery) -> str:
        return f"{self.base_url}/rest/v1/{query.table}"

    def _format_value(self, value: Any) -> str:
        if isinstance(value, bool):
            return 'true' if value else 'false'
        if value is None:
            return 'null'
        if hasattr(value, 'isoformat'):
            return value.isoformat()
        return str(value)

    def _quote(self, value: Any) -> str:
        text = self._format_value(value)
        if self._NEEDS_QUOTES.search(text):
            escaped = text.replace('\\', '\\\\').replace('"', '\\"')
            return f'"{escaped}"'
        return text

    def build_params(self, query: RowQuery, include_select: bool = True) -> List[Tuple[str, str]]:
        """
        Translate a RowQuery into PostgREST query parameters.

        Args:
            query: Query to translate
            include_select: Whether to emit select and the page order

        Returns:
            List of (name, value) pairs; repeated names are allowed
        """
        params: List[Tuple[str, str]] = []
        if include_select:
            params.append(('select', ','.join(query.columns)))

        if query.time_range is not None:
            tr = query.time_range
            params.append((tr.field, f"gte.{self._format_value(tr.start)}"))
            params.append((tr.field, f"lte.{self._format_value(tr.end)}"))

        for column, value in query.equals.items():
            params.append((column, f"eq.{self._format_value(value)}"))

        for column, values in query.members.items():
            quoted = ','.join(self._quote(v) for v in values)
            params.append((column, f"in.({quoted})"))

        for column in query.not_null:
            params.append((column, 'not.is.null'))

        if include_select:
            order = [f"{column}.{'desc' if descending else 'asc'}" for column, descending in query.page_order()]
            params.append(('order', ','.join(order)))

        return params

    def _request(self, method: str, query: RowQuery, params: List[Tuple[str, str]],
                 headers: Optional[Dict[str, str]] = None) -> requests.Response:
        url = self._url(query)
        self.logger.debug(f"{method} {query.table} params={params}")
        try:
            response = self.session.request(method, url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Store request failed for {query.table}: {e}")
            raise UpstreamQueryError(f"{query.table}: {e}", entity=query.entity) from e

        if response.status_code >= 400:
            self.logger.error(
                f"Store returned {response.status_code} for {query.table}: {response.text[:500]}"
            )
            raise UpstreamQueryError(
                f"{query.table}: HTTP {response.status_code} {response.text[:500]}",
                entity=query.entity
            )
        return response

    def _split_members(self, query: RowQuery) -> Iterator[RowQuery]:
        """Split oversized IN lists so each request stays within URL limits"""
        for column, values in query.members.items():
            if len(values) > self.max_in_values:
                for i in range(0, len(values), self.max_in_values):
                    yield from self._split_members(query.with_members(column, values[i:i + self.max_in_values]))
                return
        yield query

    def select(self, query: RowQuery) -> Iterator[Dict[str, Any]]:
        if any(len(values) == 0 for values in query.members.values()):
            return

        remaining = query.limit
        for part in self._split_members(query):
            for row in self._select_pages(part, remaining):
                yield row
                if remaining is not None:
                    remaining -= 1
                    if remaining <= 0:
                        return

    def _select_pages(self, query: RowQuery, limit: Optional[int]) -> Iterator[Dict[str, Any]]:
        base_params = self.build_params(query)
        offset = 0
        while True:
            page_size = self.page_size if limit is None else min(self.page_size, limit - offset)
            if page_size <= 0:
                return
            params = base_params + [('limit', str(page_size)), ('offset', str(offset))]
            response = self._request('GET', query, params)
            try:
                rows = response.json()
            except ValueError as e:
                raise UpstreamQueryError(f"{query.table}: invalid JSON response", entity=query.entity) from e
            if not isinstance(rows, list):
                raise UpstreamQueryError(f"{query.table}: unexpected payload", entity=query.entity)

            yield from rows
            if len(rows) < page_size:
                return
            offset += len(rows)

    def count(self, query: RowQuery) -> int:
        if any(len(values) == 0 for values in query.members.values()):
            return 0
        total = 0
        for part in self._split_members(query):
            params = self.build_params(part, include_select=False)
            response = self._request('HEAD', part, params, headers={'Prefer': 'count=exact'})
            total += self._parse_count(part, response.headers.get('Content-Range', ''))
        return total

    def _parse_count(self, query: RowQuery, content_range: str) -> int:
        match = self._CONTENT_RANGE.match(content_range.strip())
        if not match or match.group(1) == '*':
            raise UpstreamQueryError(
                f"{query.table}: missing count in Content-Range {content_range!r}",
                entity=query.entity
            )
        return int(match.group(1))

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()


def _key(value: Any) -> Any:
    # Records hold numeric ids as strings; compare fixture values the same way
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class InMemoryRowStore(RowStore):
    """Store backed by in-process tables, keyed by table name"""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.query_log: List[RowQuery] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_json(cls, path: Path) -> 'InMemoryRowStore':
        """Load tables from a JSON object of {table: [rows]}"""
        with open(path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
        return cls(payload)

    def _matches(self, query: RowQuery, row: Dict[str, Any]) -> bool:
        if query.time_range is not None:
            try:
                if not query.time_range.contains(row.get(query.time_range.field)):
                    return False
            except ValueError as e:
                raise UpstreamQueryError(f"{query.table}: {e}", entity=query.entity) from e

        for column, value in query.equals.items():
            if _key(row.get(column)) != _key(value):
                return False

        for column, values in query.members.items():
            if _key(row.get(column)) not in {_key(v) for v in values}:
                return False

        for column in query.not_null:
            if row.get(column) is None:
                return False

        return True

    def _project(self, query: RowQuery, row: Dict[str, Any]) -> Dict[str, Any]:
        if '*' in query.columns:
            return dict(row)
        return {column: row.get(column) for column in query.columns}

    def _rows(self, query: RowQuery) -> List[Dict[str, Any]]:
        self.query_log.append(query)
        if query.table not in self.tables:
            raise UpstreamQueryError(f'relation "{query.table}" does not exist', entity=query.entity)
        return [row for row in self.tables[query.table] if self._matches(query, row)]

    def select(self, query: RowQuery) -> Iterator[Dict[str, Any]]:
        rows = self._rows(query)

        if query.order_by:
            present = [r for r in rows if r.get(query.order_by) is not None]
            missing = [r for r in rows if r.get(query.order_by) is None]
            present.sort(key=lambda r: parse_timestamp(r[query.order_by])
                         if query.time_range and query.order_by == query.time_range.field
                         else r[query.order_by],
                         reverse=query.descending)
            rows = present + missing

        if query.limit is not None:
            rows = rows[:query.limit]

        for row in rows:
            yield self._project(query, row)

    def count(self, query: RowQuery) -> int:
        return len(self._rows(query))


def create_row_store(store_config: StoreConfig) -> RowStore:
    """
    Create the configured row store.

    Raises:
        ValueError: If the backend is unknown or not configured
    """
    if store_config.backend == 'memory':
        if store_config.fixture_path:
            return InMemoryRowStore.from_json(store_config.fixture_path)
        return InMemoryRowStore()

    if store_config.backend == 'rest':
        if not store_config.is_configured:
            raise ValueError("REST store requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        return RestRowStore(
            base_url=store_config.base_url,
            api_key=store_config.api_key,
            schema=store_config.schema,
            timeout=store_config.timeout_seconds,
            page_size=store_config.page_size,
            max_in_values=store_config.max_in_values
        )

    raise ValueError(f"Unsupported store backend: {store_config.backend}")
