"""Commission aggregation over stored snapshots.

Two separate paths:

- ``aggregate_by_*`` / ``aggregate_total`` push one grouped SQL query per call to
  the store and are the only path for period-wide reporting.
- ``summarize_tickets`` / ``summarize_tickets_total`` fold already-loaded
  snapshots in memory and are meant for small, explicit ticket-id sets.

Both report ``ticket_count`` as distinct tickets and ``jugada_count`` as
jugadas. The seller column only counts commission whose origin is SELLER.
Seller groups also carry the window the seller belongs to.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from typing import Any, Iterable

from lottery_commission.commission.contracts import ORIGIN_SELLER

from .contracts import (
    DIMENSION_DRAW,
    DIMENSION_LOTTERY,
    DIMENSION_SELLER,
    DIMENSION_TOTAL,
    DIMENSION_WINDOW,
    GROUPED_DIMENSIONS,
    AggregationFilter,
    AggregationFilterError,
    AggregationResult,
    SnapshotWithTicket,
    to_money,
)
from .predicates import build_aggregation_predicate
from .snapshots import CommissionSnapshotReader
from .storage import CommissionStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _DimensionQuery:
    key_column: str | None
    name_column: str | None
    joins: str = ""
    extra_clauses: tuple[str, ...] = ()
    window_columns: tuple[str, str] | None = None


_DIMENSIONS: dict[str, _DimensionQuery] = {
    DIMENSION_WINDOW: _DimensionQuery(key_column="t.window_id", name_column="w.display_name"),
    DIMENSION_SELLER: _DimensionQuery(
        key_column="t.seller_id",
        name_column="s.display_name",
        joins=(
            "LEFT JOIN cm_actor s ON t.seller_id = s.actor_id "
            "LEFT JOIN cm_actor sw ON s.window_id = sw.actor_id"
        ),
        extra_clauses=("t.seller_id IS NOT NULL",),
        window_columns=("s.window_id", "sw.display_name"),
    ),
    DIMENSION_LOTTERY: _DimensionQuery(
        key_column="t.lottery_id",
        name_column="l.display_name",
        joins="LEFT JOIN cm_lottery l ON t.lottery_id = l.lottery_id",
    ),
    DIMENSION_DRAW: _DimensionQuery(
        key_column="t.draw_id",
        name_column="d.display_name",
        joins="LEFT JOIN cm_draw d ON t.draw_id = d.draw_id",
    ),
    DIMENSION_TOTAL: _DimensionQuery(key_column=None, name_column=None),
}

_MEASURES = f"""
    COALESCE(SUM(j.amount), 0) AS total_sales,
    COALESCE(SUM(j.commission_amount), 0) AS total_commission,
    COALESCE(SUM(j.listero_commission_amount), 0) AS total_listero_commission,
    COALESCE(SUM(CASE WHEN j.commission_origin = '{ORIGIN_SELLER}' THEN j.commission_amount ELSE 0 END), 0)
        AS total_seller_commission,
    COUNT(DISTINCT t.ticket_id) AS ticket_count,
    COUNT(j.jugada_id) AS jugada_count
"""


def build_grouped_query(dimension: str, filters: AggregationFilter | None = None) -> tuple[str, list[Any]]:
    query = _DIMENSIONS.get(dimension)
    if query is None:
        raise AggregationFilterError(f"unsupported dimension: {dimension!r}")
    predicate = build_aggregation_predicate(filters)
    for clause in query.extra_clauses:
        predicate.add(clause)
    if query.key_column is None:
        select_keys = "NULL AS group_key, NULL AS display_name"
        tail = ""
    else:
        select_keys = f"{query.key_column} AS group_key, {query.name_column} AS display_name"
        group_by = [query.key_column, query.name_column]
        if query.window_columns is not None:
            group_by.extend(query.window_columns)
        tail = f"GROUP BY {', '.join(group_by)} ORDER BY {query.key_column}"
    if query.window_columns is None:
        select_window = "NULL AS window_id, NULL AS window_name"
    else:
        select_window = f"{query.window_columns[0]} AS window_id, {query.window_columns[1]} AS window_name"
    sql = f"""
        SELECT {select_keys}, {select_window}, {_MEASURES}
        FROM cm_jugada j
        INNER JOIN cm_ticket t ON j.ticket_id = t.ticket_id
        LEFT JOIN cm_actor w ON t.window_id = w.actor_id
        {query.joins}
        WHERE {predicate.where_sql()}
        {tail}
    """
    return sql, predicate.params


class CommissionAggregationEngine:
    def __init__(self, *, store: CommissionStore, reader: CommissionSnapshotReader | None = None) -> None:
        self.store = store
        self.reader = reader or CommissionSnapshotReader(store=store)

    def aggregate_by_window(self, filters: AggregationFilter | None = None) -> dict[str, AggregationResult]:
        return self._grouped(DIMENSION_WINDOW, filters)

    def aggregate_by_seller(self, filters: AggregationFilter | None = None) -> dict[str, AggregationResult]:
        return self._grouped(DIMENSION_SELLER, filters)

    def aggregate_by_lottery(self, filters: AggregationFilter | None = None) -> dict[str, AggregationResult]:
        return self._grouped(DIMENSION_LOTTERY, filters)

    def aggregate_by_draw(self, filters: AggregationFilter | None = None) -> dict[str, AggregationResult]:
        return self._grouped(DIMENSION_DRAW, filters)

    def aggregate_total(self, filters: AggregationFilter | None = None) -> AggregationResult:
        sql, params = build_grouped_query(DIMENSION_TOTAL, filters)
        rows = self.store.fetch_all(sql, params)
        if not rows:
            return AggregationResult(group_key=None, display_name=None)
        return _row_to_result(rows[0])

    def aggregate(self, dimension: str, filters: AggregationFilter | None = None) -> dict[str, AggregationResult]:
        if dimension == DIMENSION_TOTAL:
            total = self.aggregate_total(filters)
            return {DIMENSION_TOTAL: total}
        return self._grouped(dimension, filters)

    def summarize_tickets(self, ticket_ids: Iterable[str], dimension: str) -> dict[str, AggregationResult]:
        """In-memory grouping for a bounded ticket-id set."""
        snapshots = self._ticket_snapshots(ticket_ids)
        return aggregate_snapshots(snapshots, dimension)

    def summarize_tickets_total(self, ticket_ids: Iterable[str]) -> AggregationResult:
        return total_snapshots(self._ticket_snapshots(ticket_ids))

    def _ticket_snapshots(self, ticket_ids: Iterable[str]) -> list[SnapshotWithTicket]:
        by_ticket = self.reader.snapshots_for_tickets(ticket_ids)
        return [item for rows in by_ticket.values() for item in rows]

    def _grouped(self, dimension: str, filters: AggregationFilter | None) -> dict[str, AggregationResult]:
        if dimension not in GROUPED_DIMENSIONS:
            raise AggregationFilterError(f"unsupported dimension: {dimension!r}")
        sql, params = build_grouped_query(dimension, filters)
        rows = self.store.fetch_all(sql, params)
        logger.debug("commission aggregate dimension=%s groups=%s", dimension, len(rows))
        results: dict[str, AggregationResult] = {}
        for row in rows:
            result = _row_to_result(row)
            results[str(result.group_key)] = result
        return results


@dataclass
class _Accumulator:
    group_key: str | None
    display_name: str | None
    total_sales: Decimal = Decimal("0.00")
    total_commission: Decimal = Decimal("0.00")
    total_listero_commission: Decimal = Decimal("0.00")
    total_seller_commission: Decimal = Decimal("0.00")
    ticket_ids: set[str] = field(default_factory=set)
    jugada_count: int = 0
    window_id: str | None = None
    window_name: str | None = None

    def add(self, item: SnapshotWithTicket) -> None:
        commission = to_money(item.snapshot.commission_amount)
        self.total_sales += to_money(item.amount)
        self.total_commission += commission
        self.total_listero_commission += to_money(item.listero_snapshot.commission_amount)
        if item.snapshot.commission_origin == ORIGIN_SELLER:
            self.total_seller_commission += commission
        self.ticket_ids.add(item.ticket_id)
        self.jugada_count += 1

    def result(self) -> AggregationResult:
        return AggregationResult(
            group_key=self.group_key,
            display_name=self.display_name,
            total_sales=self.total_sales,
            total_commission=self.total_commission,
            total_listero_commission=self.total_listero_commission,
            total_seller_commission=self.total_seller_commission,
            ticket_count=len(self.ticket_ids),
            jugada_count=self.jugada_count,
            window_id=self.window_id,
            window_name=self.window_name,
        )


def aggregate_snapshots(snapshots: Iterable[SnapshotWithTicket], dimension: str) -> dict[str, AggregationResult]:
    if dimension not in GROUPED_DIMENSIONS:
        raise AggregationFilterError(f"unsupported dimension: {dimension!r}")
    groups: dict[str, _Accumulator] = {}
    for item in snapshots:
        key = item.group_key(dimension)
        if key is None:
            continue
        bucket = groups.get(key)
        if bucket is None:
            bucket = _Accumulator(group_key=key, display_name=item.display_names.get(dimension))
            if dimension == DIMENSION_SELLER:
                bucket.window_id = item.seller_window_id
                bucket.window_name = item.seller_window_name
            groups[key] = bucket
        bucket.add(item)
    return {key: groups[key].result() for key in sorted(groups)}


def total_snapshots(snapshots: Iterable[SnapshotWithTicket]) -> AggregationResult:
    bucket = _Accumulator(group_key=None, display_name=None)
    for item in snapshots:
        bucket.add(item)
    return bucket.result()


def _row_to_result(row: Any) -> AggregationResult:
    return AggregationResult(
        group_key=str(row[0]) if row[0] is not None else None,
        display_name=str(row[1]) if row[1] is not None else None,
        total_sales=to_money(row[4]),
        total_commission=to_money(row[5]),
        total_listero_commission=to_money(row[6]),
        total_seller_commission=to_money(row[7]),
        ticket_count=int(row[8] or 0),
        jugada_count=int(row[9] or 0),
        window_id=str(row[2]) if row[2] is not None else None,
        window_name=str(row[3]) if row[3] is not None else None,
    )
