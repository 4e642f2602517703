"""
Candidate borrowers from a GraphQL indexer (subgraph)

Each supported response shape is an explicit schema variant with its own query
and parser. The primary schema is tried first; the next one is used only when
the previous one produced nothing on its first page.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from errors import (
    IndexerError,
    IndexerNotFoundError,
    IndexerUnavailableError,
    SchemaMismatchError,
)
from retry_utils import RetryPolicy, linear_backoff

logger = logging.getLogger(__name__)


class IndexerSchema:
    """One response shape the indexer may serve."""

    name = "base"
    query = ""

    def variables(self, first: int, skip: int) -> Dict[str, Any]:
        return {"first": first, "skip": skip}

    def parse_page(self, data: Any) -> List[str]:
        raise NotImplementedError

    @staticmethod
    def _rows(data: Any, entity: str) -> List[Dict[str, Any]]:
        if not isinstance(data, dict) or not isinstance(data.get(entity), list):
            raise SchemaMismatchError(f"response has no '{entity}' list")
        return data[entity]


class AccountsSchema(IndexerSchema):
    """Compound v2 subgraph: accounts with a USD borrow total."""

    name = "accounts"
    query = """
      query Borrowers($first: Int!, $skip: Int!) {
        accounts(first: $first, skip: $skip, orderBy: totalBorrowValueInUSD, orderDirection: desc,
                 where: { totalBorrowValueInUSD_gt: "0" }) {
          id
        }
      }
    """

    def parse_page(self, data: Any) -> List[str]:
        return [str(r["id"]) for r in self._rows(data, "accounts") if isinstance(r, dict) and r.get("id")]


class PositionsSchema(IndexerSchema):
    """Messari lending schema: open borrower positions."""

    name = "positions"
    query = """
      query Borrowers($first: Int!, $skip: Int!) {
        positions(first: $first, skip: $skip, where: { side: BORROWER, balance_gt: "0" }) {
          account { id }
        }
      }
    """

    def parse_page(self, data: Any) -> List[str]:
        out = []
        for r in self._rows(data, "positions"):
            account = r.get("account") if isinstance(r, dict) else None
            if isinstance(account, dict) and account.get("id"):
                out.append(str(account["id"]))
        return out


class BorrowEventsSchema(IndexerSchema):
    """Event-entity subgraphs: raw Borrow events."""

    name = "borrows"
    query = """
      query Borrowers($first: Int!, $skip: Int!) {
        borrowEvents(first: $first, skip: $skip, orderBy: blockNumber, orderDirection: desc) {
          borrower
        }
      }
    """

    def parse_page(self, data: Any) -> List[str]:
        return [str(r["borrower"]) for r in self._rows(data, "borrowEvents") if isinstance(r, dict) and r.get("borrower")]


DEFAULT_SCHEMAS: Sequence[IndexerSchema] = (AccountsSchema(), PositionsSchema(), BorrowEventsSchema())


def is_retryable_indexer_error(exc: BaseException) -> bool:
    return not isinstance(exc, (IndexerNotFoundError, SchemaMismatchError))


class IndexerCandidates:
    name = "indexer"

    def __init__(
        self,
        url: str,
        page_size: int = 200,
        max_pages: int = 50,
        timeout: float = 6.0,
        retry_policy: Optional[RetryPolicy] = None,
        schemas: Sequence[IndexerSchema] = DEFAULT_SCHEMAS,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout
        self.retry = retry_policy or RetryPolicy(
            max_attempts=5, backoff=linear_backoff(1.0), retryable=is_retryable_indexer_error, name="Indexer"
        )
        self.schemas = list(schemas)
        self.session = session or requests.Session()
        self.last_schema: Optional[str] = None

    def fetch(self) -> List[str]:
        """Ordered unique lowercase borrower addresses."""
        if not self.url:
            return []

        for schema in self.schemas:
            found = self._fetch_schema(schema)
            if found:
                self.last_schema = schema.name
                logger.info("[Indexer] %d candidates via schema '%s'", len(found), schema.name)
                return found
            logger.info("[Indexer] Schema '%s' returned nothing, trying next", schema.name)
        return []

    def _request_page(self, schema: IndexerSchema, page: int) -> List[str]:
        payload = {"query": schema.query, "variables": schema.variables(self.page_size, page * self.page_size)}
        resp = self.session.post(self.url, json=payload, timeout=self.timeout)
        if resp.status_code == 404:
            raise IndexerNotFoundError(f"Indexer endpoint not found (404): {self.url}")
        resp.raise_for_status()
        body = resp.json()
        if not isinstance(body, dict):
            raise IndexerError(f"Unexpected indexer response type {type(body).__name__}")
        data = body.get("data")
        if body.get("errors") and not data:
            messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in body["errors"])
            raise SchemaMismatchError(f"schema '{schema.name}' rejected: {messages[:200]}")
        return schema.parse_page(data)

    def _fetch_schema(self, schema: IndexerSchema) -> List[str]:
        seen: Dict[str, None] = {}
        for page in range(self.max_pages):
            try:
                batch = self.retry.call(self._request_page, schema, page)
            except IndexerNotFoundError:
                raise
            except SchemaMismatchError as e:
                logger.info("[Indexer] %s", e)
                break
            except Exception as e:
                if page == 0:
                    raise IndexerUnavailableError(
                        f"Indexer failed on first page of schema '{schema.name}': {e}"
                    ) from e
                logger.warning(
                    "[Indexer] Page %d of schema '%s' failed, keeping %d candidates: %s",
                    page, schema.name, len(seen), str(e)[:120],
                )
                break

            new = 0
            for addr in batch:
                a = addr.lower()
                if a not in seen:
                    seen[a] = None
                    new += 1
            if new < self.page_size:
                break
        else:
            logger.warning("[Indexer] Hit page cap (%d) for schema '%s'", self.max_pages, schema.name)
        return list(seen)
