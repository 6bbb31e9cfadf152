"""SQL predicate builder shared by snapshot reads and grouped aggregates.

Queries alias ``cm_jugada`` as ``j``, ``cm_ticket`` as ``t`` and the window
actor row as ``w``. An absent filter field adds no clause at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .contracts import TICKET_STATUS_CANCELLED, AggregationFilter


@dataclass
class SqlPredicate:
    clauses: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)

    def add(self, template: str, *values: Any) -> None:
        refs = [self._bind(value) for value in values]
        self.clauses.append(template.format(*refs))

    def add_in(self, column: str, values: Iterable[Any]) -> None:
        refs = [self._bind(value) for value in values]
        if not refs:
            self.clauses.append("1 = 0")
            return
        self.clauses.append(f"{column} IN ({', '.join(refs)})")

    def where_sql(self) -> str:
        return " AND ".join(self.clauses) if self.clauses else "1 = 1"

    def _bind(self, value: Any) -> str:
        self.params.append(value)
        return f"{{p{len(self.params)}}}"


def base_predicate() -> SqlPredicate:
    predicate = SqlPredicate()
    predicate.add("j.deleted_at_utc IS NULL")
    predicate.add("t.deleted_at_utc IS NULL")
    predicate.add("t.status <> {}", TICKET_STATUS_CANCELLED)
    return predicate


def apply_filter(predicate: SqlPredicate, filters: AggregationFilter) -> SqlPredicate:
    if filters.window_id:
        predicate.add("t.window_id = {}", filters.window_id)
    if filters.bank_id:
        predicate.add("w.bank_id = {}", filters.bank_id)
    if filters.seller_id:
        predicate.add("t.seller_id = {}", filters.seller_id)
    if filters.draw_id:
        predicate.add("t.draw_id = {}", filters.draw_id)
    if filters.lottery_id:
        predicate.add("t.lottery_id = {}", filters.lottery_id)
    if filters.date_from:
        predicate.add("t.business_date >= {}", filters.date_from.isoformat())
    if filters.date_to:
        predicate.add("t.business_date <= {}", filters.date_to.isoformat())
    if filters.ticket_ids:
        predicate.add_in("t.ticket_id", filters.ticket_ids)
    return predicate


def build_aggregation_predicate(filters: AggregationFilter | None) -> SqlPredicate:
    return apply_filter(base_predicate(), filters or AggregationFilter())
