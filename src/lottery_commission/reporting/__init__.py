"""Commission snapshot reporting surfaces."""

from .aggregation import (
    CommissionAggregationEngine,
    aggregate_snapshots,
    build_grouped_query,
    total_snapshots,
)
from .contracts import (
    DIMENSION_DRAW,
    DIMENSION_LOTTERY,
    DIMENSION_SELLER,
    DIMENSION_TOTAL,
    DIMENSION_WINDOW,
    AggregationFilter,
    AggregationFilterError,
    AggregationResult,
    SnapshotWithTicket,
)
from .predicates import SqlPredicate, build_aggregation_predicate
from .recalculation import RecalculationDrift, preview_recalculation
from .snapshots import (
    CommissionSnapshotReader,
    CommissionSnapshotValidator,
    InvalidSnapshot,
    SnapshotValidationReport,
    is_snapshot_consistent,
)
from .storage import CommissionStore, JugadaRecord, StoreWriteResult, TicketRecord

__all__ = [
    "DIMENSION_DRAW",
    "DIMENSION_LOTTERY",
    "DIMENSION_SELLER",
    "DIMENSION_TOTAL",
    "DIMENSION_WINDOW",
    "AggregationFilter",
    "AggregationFilterError",
    "AggregationResult",
    "CommissionAggregationEngine",
    "CommissionSnapshotReader",
    "CommissionSnapshotValidator",
    "CommissionStore",
    "InvalidSnapshot",
    "JugadaRecord",
    "RecalculationDrift",
    "SnapshotValidationReport",
    "SnapshotWithTicket",
    "SqlPredicate",
    "StoreWriteResult",
    "TicketRecord",
    "aggregate_snapshots",
    "build_aggregation_predicate",
    "build_grouped_query",
    "is_snapshot_consistent",
    "preview_recalculation",
    "total_snapshots",
]
