"""
Report Service (Data Access Layer)

Row fetcher for the report handlers. Wraps the injected row store with the
query shapes reports need: range-scoped reads, count-only reads, a single
IN fetch for join keys, and concurrent independent reads with all-or-nothing
semantics.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import AbstractSet, Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import UpstreamQueryError
from .filters import RowQuery


def build_id_query(
    entity: str,
    key_field: str,
    ids: Iterable[Any],
    columns: Optional[Sequence[str]] = None
) -> RowQuery:
    """Query for the rows whose key_field is one of ids"""
    return RowQuery(
        entity=entity,
        columns=tuple(columns) if columns else ('*',),
        members={key_field: list(ids)}
    )


class ReportService:
    """Base service for executing report queries"""

    def __init__(self, store, max_workers: int = 4):
        self.store = store
        self.max_workers = max(1, max_workers)
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch(self, query: RowQuery) -> List[Dict[str, Any]]:
        """
        Execute a query and return its rows.

        Args:
            query: Single-table query

        Returns:
            List of row dictionaries (empty when nothing matches)

        Raises:
            UpstreamQueryError: If the store reports an error
        """
        if any(len(values) == 0 for values in query.members.values()):
            return []
        try:
            rows = list(self.store.select(query))
        except UpstreamQueryError:
            raise
        except Exception as e:
            raise UpstreamQueryError(f"{query.table}: {e}", entity=query.entity) from e
        self.logger.debug(f"Fetched {len(rows)} rows from {query.table}")
        return rows

    def count(self, query: RowQuery) -> int:
        """Execute a count-only query"""
        try:
            return int(self.store.count(query) or 0)
        except UpstreamQueryError:
            raise
        except Exception as e:
            raise UpstreamQueryError(f"{query.table}: {e}", entity=query.entity) from e

    def fetch_by_ids(
        self,
        entity: str,
        key_field: str,
        ids: Iterable[Any],
        columns: Optional[Sequence[str]] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch the rows whose key_field is one of ids in a single IN query.

        No round trip is made when ids is empty.
        """
        return self.fetch(build_id_query(entity, key_field, ids, columns))

    def fetch_concurrently(
        self,
        queries: Mapping[str, RowQuery],
        optional: AbstractSet[str] = frozenset()
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Run independent queries in parallel and wait for all of them.

        Args:
            queries: Name -> query
            optional: Names whose failure degrades to no rows instead of
                failing the whole call

        Returns:
            Name -> rows, for every query

        Raises:
            UpstreamQueryError: From the first failing required query; no
                partial result is returned
        """
        if not queries:
            return {}

        workers = min(self.max_workers, len(queries))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {name: executor.submit(self.fetch, query) for name, query in queries.items()}
            results = {}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except UpstreamQueryError as e:
                    if name not in optional:
                        raise
                    self.logger.warning(f"Optional lookup '{name}' failed, using defaults: {e.detail}")
                    results[name] = []
            return results
