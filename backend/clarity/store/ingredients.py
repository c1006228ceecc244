from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from supabase import Client

from clarity import schemas


_logger = logging.getLogger(__name__)

SEARCH_COLUMNS = ("name", "group_root")


@dataclass(frozen=True)
class SearchPage:
    rows: list[schemas.StructuredRecord] = field(default_factory=list)
    total: int | None = None
    page: int = 1
    page_size: int = 5
    column: str | None = None
    # First match of the column when the requested page is past the end.
    lead: schemas.StructuredRecord | None = None

    @property
    def best(self) -> schemas.StructuredRecord | None:
        return self.rows[0] if self.rows else self.lead

    def pagination(self) -> schemas.Pagination:
        shown = (self.page - 1) * self.page_size + len(self.rows)
        has_more = (self.total > shown) if self.total is not None else len(self.rows) == self.page_size
        return schemas.Pagination(page=self.page, page_size=self.page_size, total=self.total, has_more=has_more)


def rank_rows(rows: list[schemas.StructuredRecord], message: str, strategy: str = "first") -> list[schemas.StructuredRecord]:
    """
    Order candidate rows before the first one is used as the match.

    `first` keeps the store's own order. `exact` moves a case-insensitive exact
    name match to the front and otherwise keeps the store's order.
    """
    if strategy != "exact":
        return rows
    target = (message or "").strip().lower()
    exact: list[schemas.StructuredRecord] = []
    rest: list[schemas.StructuredRecord] = []
    for row in rows:
        (exact if (row.name or "").strip().lower() == target else rest).append(row)
    return exact + rest


class IngredientStore:
    def __init__(
        self,
        client: Client,
        *,
        table: str = "ingredients_variants",
        page_size: int = 5,
        ranking: str = "first",
    ) -> None:
        self.client = client
        self.table = table
        self.page_size = page_size
        self.ranking = ranking

    def _query(self, column: str, term: str, *, offset: int, limit: int) -> tuple[list[dict[str, Any]], int | None]:
        res = (
            self.client.table(self.table)
            .select("*", count="estimated")
            .ilike(column, f"%{term}%")
            .range(offset, offset + limit - 1)
            .execute()
        )
        rows = res.data if isinstance(res.data, list) else []
        return rows, res.count

    def _records(self, rows: list[Any]) -> list[schemas.StructuredRecord]:
        records = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                records.append(schemas.StructuredRecord.model_validate(row))
            except ValidationError as exc:
                _logger.warning("skipping malformed ingredient row table=%s name=%s error=%s", self.table, row.get("name"), exc)
        return records

    def search(self, message: str, *, page: int = 1, limit: int | None = None) -> SearchPage:
        term = (message or "").strip()
        size = limit or self.page_size
        page = max(1, page)
        if not term:
            return SearchPage(page=page, page_size=size)

        offset = (page - 1) * size
        for column in SEARCH_COLUMNS:
            try:
                rows, total = self._query(column, term, offset=offset, limit=size)
                records = self._records(rows)
                lead = None
                if not records and offset and total != 0:
                    # Page is past the end; the column still decides the match.
                    first, _ = self._query(column, term, offset=0, limit=1)
                    lead = next(iter(self._records(first)), None)
            except Exception as exc:
                _logger.warning("ingredient lookup failed table=%s column=%s error=%s", self.table, column, exc)
                return SearchPage(page=page, page_size=size)
            if records or lead is not None:
                _logger.info("ingredient lookup hit column=%s rows=%s total=%s", column, len(records), total)
                return SearchPage(
                    rows=rank_rows(records, term, self.ranking),
                    total=total,
                    page=page,
                    page_size=size,
                    column=column,
                    lead=lead,
                )
        return SearchPage(page=page, page_size=size)


class InteractionLog:
    def __init__(self, client: Client, *, table: str = "clarity_interactions") -> None:
        self.client = client
        self.table = table

    def record(
        self,
        *,
        request_id: str,
        user_query: str,
        history: list[dict[str, Any]],
        kind: str,
        model_response: dict[str, Any] | None,
        ui: dict[str, Any],
    ) -> None:
        try:
            self.client.table(self.table).insert(
                {
                    "request_id": request_id,
                    "user_query": user_query,
                    "history": history,
                    "kind": kind,
                    "model_response": model_response,
                    "ui": ui,
                }
            ).execute()
        except Exception as exc:
            _logger.warning("interaction log failed request_id=%s error=%s", request_id, exc)
