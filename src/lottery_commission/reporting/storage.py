"""Relational commission store (sqlite for local runs, Postgres otherwise).

Jugada commission snapshots are append-only: a second write with identical
content reports DUPLICATE and different content reports HASH_MISMATCH, never
an overwrite. Ticket lifecycle fields (status, soft delete) are the only
mutable columns.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
import hashlib
import json
from pathlib import Path
import re
import sqlite3
from typing import Any, Iterator, Mapping, Sequence

import psycopg

from lottery_commission.commission.contracts import (
    BET_TYPES,
    COMMISSION_ORIGINS,
    CommissionSnapshot,
)
from lottery_commission.commission.errors import ActorNotFoundError, CommissionStoreError


WRITE_NEW = "NEW"
WRITE_DUPLICATE = "DUPLICATE"
WRITE_HASH_MISMATCH = "HASH_MISMATCH"

TICKET_STATUSES: set[str] = {"ACTIVE", "EVALUATED", "PAID", "SETTLED", "CANCELLED", "RESTORED"}


@dataclass(frozen=True)
class TicketRecord:
    ticket_id: str
    window_id: str
    lottery_id: str
    draw_id: str
    business_date: date | str
    seller_id: str | None = None
    status: str = "ACTIVE"
    is_active: bool = True


@dataclass(frozen=True)
class JugadaRecord:
    jugada_id: str
    ticket_id: str
    bet_type: str
    amount: float
    snapshot: CommissionSnapshot | None
    final_multiplier: float | None = None
    listero_commission_amount: float | None = None


@dataclass(frozen=True)
class StoreWriteResult:
    status: str
    record_id: str
    record_digest: str


def is_postgres_dsn(value: str | None) -> bool:
    if not value:
        return False
    return value.startswith("postgres://") or value.startswith("postgresql://")


class CommissionStore:
    def __init__(self, *, locator: str) -> None:
        self.locator = str(locator or "").strip()
        if not self.locator:
            raise CommissionStoreError("locator must be non-empty")
        self.backend = "postgres" if is_postgres_dsn(self.locator) else "sqlite"
        if self.backend == "sqlite":
            path = Path(_sqlite_path(self.locator))
            path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def upsert_actor(
        self,
        *,
        actor_id: str,
        tier: str,
        display_name: str,
        bank_id: str | None = None,
        window_id: str | None = None,
        commission_policy: Any | None = None,
    ) -> None:
        normalized_tier = str(tier or "").strip().upper()
        if normalized_tier not in COMMISSION_ORIGINS:
            raise CommissionStoreError(f"tier must be one of {sorted(COMMISSION_ORIGINS)}")
        policy_json = _policy_to_text(commission_policy)
        with self._connect() as conn:
            _execute(
                conn,
                self.backend,
                """
                INSERT INTO cm_actor (
                    actor_id, tier, display_name, bank_id, window_id, commission_policy_json, updated_at_utc
                )
                VALUES ({p1}, {p2}, {p3}, {p4}, {p5}, {p6}, {p7})
                ON CONFLICT (actor_id) DO UPDATE SET
                    tier = excluded.tier,
                    display_name = excluded.display_name,
                    bank_id = excluded.bank_id,
                    window_id = excluded.window_id,
                    commission_policy_json = excluded.commission_policy_json,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (
                    _require_id(actor_id, "actor_id"),
                    normalized_tier,
                    display_name,
                    bank_id,
                    window_id,
                    policy_json,
                    _utc_now(),
                ),
            )

    def upsert_lottery(self, *, lottery_id: str, display_name: str) -> None:
        with self._connect() as conn:
            _execute(
                conn,
                self.backend,
                """
                INSERT INTO cm_lottery (lottery_id, display_name) VALUES ({p1}, {p2})
                ON CONFLICT (lottery_id) DO UPDATE SET display_name = excluded.display_name
                """,
                (_require_id(lottery_id, "lottery_id"), display_name),
            )

    def upsert_draw(self, *, draw_id: str, lottery_id: str, display_name: str) -> None:
        with self._connect() as conn:
            _execute(
                conn,
                self.backend,
                """
                INSERT INTO cm_draw (draw_id, lottery_id, display_name) VALUES ({p1}, {p2}, {p3})
                ON CONFLICT (draw_id) DO UPDATE SET
                    lottery_id = excluded.lottery_id,
                    display_name = excluded.display_name
                """,
                (_require_id(draw_id, "draw_id"), _require_id(lottery_id, "lottery_id"), display_name),
            )

    def get_actor_policy(self, actor_id: str) -> Any | None:
        """Return the actor's stored policy document, decoded when it is JSON."""
        with self._connect() as conn:
            row = _query_one(
                conn,
                self.backend,
                "SELECT commission_policy_json FROM cm_actor WHERE actor_id = {p1}",
                (actor_id,),
            )
        if row is None:
            raise ActorNotFoundError(actor_id)
        text = row[0]
        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError:
            # Malformed text is handed on as-is; policy parsing rejects it.
            return text

    def record_ticket(self, record: TicketRecord) -> StoreWriteResult:
        status = str(record.status or "").strip().upper()
        if status not in TICKET_STATUSES:
            raise CommissionStoreError(f"unsupported ticket status: {record.status!r}")
        business_date = _iso_date(record.business_date)
        identity = {
            "ticket_id": record.ticket_id,
            "window_id": record.window_id,
            "seller_id": record.seller_id,
            "lottery_id": record.lottery_id,
            "draw_id": record.draw_id,
            "business_date": business_date,
        }
        digest = _digest(identity)
        with self._connect() as conn:
            row = _query_one(
                conn,
                self.backend,
                "SELECT record_digest FROM cm_ticket WHERE ticket_id = {p1}",
                (_require_id(record.ticket_id, "ticket_id"),),
            )
            if row is not None:
                existing = str(row[0])
                return StoreWriteResult(
                    status=WRITE_DUPLICATE if existing == digest else WRITE_HASH_MISMATCH,
                    record_id=record.ticket_id,
                    record_digest=existing,
                )
            _execute(
                conn,
                self.backend,
                """
                INSERT INTO cm_ticket (
                    ticket_id, window_id, seller_id, lottery_id, draw_id, business_date,
                    status, is_active, deleted_at_utc, created_at_utc, record_digest
                ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5}, {p6}, {p7}, {p8}, NULL, {p9}, {p10})
                """,
                (
                    record.ticket_id,
                    _require_id(record.window_id, "window_id"),
                    record.seller_id,
                    _require_id(record.lottery_id, "lottery_id"),
                    _require_id(record.draw_id, "draw_id"),
                    business_date,
                    status,
                    1 if record.is_active else 0,
                    _utc_now(),
                    digest,
                ),
            )
        return StoreWriteResult(status=WRITE_NEW, record_id=record.ticket_id, record_digest=digest)

    def append_jugada(self, record: JugadaRecord) -> StoreWriteResult:
        if record.bet_type not in BET_TYPES:
            raise CommissionStoreError(f"bet_type must be one of {sorted(BET_TYPES)}")
        snapshot = record.snapshot
        if snapshot is not None and snapshot.commission_origin not in (None, *COMMISSION_ORIGINS):
            raise CommissionStoreError(f"unsupported commission_origin: {snapshot.commission_origin!r}")
        content = {
            "jugada_id": record.jugada_id,
            "ticket_id": record.ticket_id,
            "bet_type": record.bet_type,
            "final_multiplier": record.final_multiplier,
            "amount": record.amount,
            "snapshot": snapshot.as_dict() if snapshot else None,
            "listero_commission_amount": record.listero_commission_amount,
        }
        digest = _digest(content)
        with self._connect() as conn:
            ticket = _query_one(
                conn,
                self.backend,
                "SELECT ticket_id FROM cm_ticket WHERE ticket_id = {p1}",
                (record.ticket_id,),
            )
            if ticket is None:
                raise CommissionStoreError(f"unknown ticket_id: {record.ticket_id!r}")
            row = _query_one(
                conn,
                self.backend,
                "SELECT record_digest FROM cm_jugada WHERE jugada_id = {p1}",
                (_require_id(record.jugada_id, "jugada_id"),),
            )
            if row is not None:
                existing = str(row[0])
                return StoreWriteResult(
                    status=WRITE_DUPLICATE if existing == digest else WRITE_HASH_MISMATCH,
                    record_id=record.jugada_id,
                    record_digest=existing,
                )
            _execute(
                conn,
                self.backend,
                """
                INSERT INTO cm_jugada (
                    jugada_id, ticket_id, bet_type, final_multiplier, amount,
                    commission_percent, commission_amount, commission_origin, commission_rule_id,
                    listero_commission_amount, deleted_at_utc, recorded_at_utc, record_digest
                ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5}, {p6}, {p7}, {p8}, {p9}, {p10}, NULL, {p11}, {p12})
                """,
                (
                    record.jugada_id,
                    record.ticket_id,
                    record.bet_type,
                    record.final_multiplier,
                    record.amount,
                    snapshot.commission_percent if snapshot else None,
                    snapshot.commission_amount if snapshot else None,
                    snapshot.commission_origin if snapshot else None,
                    snapshot.commission_rule_id if snapshot else None,
                    record.listero_commission_amount,
                    _utc_now(),
                    digest,
                ),
            )
        return StoreWriteResult(status=WRITE_NEW, record_id=record.jugada_id, record_digest=digest)

    def set_ticket_status(self, ticket_id: str, *, status: str, is_active: bool | None = None) -> None:
        normalized = str(status or "").strip().upper()
        if normalized not in TICKET_STATUSES:
            raise CommissionStoreError(f"unsupported ticket status: {status!r}")
        with self._connect() as conn:
            if is_active is None:
                _execute(
                    conn,
                    self.backend,
                    "UPDATE cm_ticket SET status = {p1} WHERE ticket_id = {p2}",
                    (normalized, ticket_id),
                )
            else:
                _execute(
                    conn,
                    self.backend,
                    "UPDATE cm_ticket SET status = {p1}, is_active = {p2} WHERE ticket_id = {p3}",
                    (normalized, 1 if is_active else 0, ticket_id),
                )

    def soft_delete_ticket(self, ticket_id: str, *, deleted_at_utc: str | None = None) -> None:
        with self._connect() as conn:
            _execute(
                conn,
                self.backend,
                "UPDATE cm_ticket SET deleted_at_utc = {p1} WHERE ticket_id = {p2} AND deleted_at_utc IS NULL",
                (deleted_at_utc or _utc_now(), ticket_id),
            )

    def soft_delete_jugada(self, jugada_id: str, *, deleted_at_utc: str | None = None) -> None:
        with self._connect() as conn:
            _execute(
                conn,
                self.backend,
                "UPDATE cm_jugada SET deleted_at_utc = {p1} WHERE jugada_id = {p2} AND deleted_at_utc IS NULL",
                (deleted_at_utc or _utc_now(), jugada_id),
            )

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[Any]:
        """Run one read query written with ``{pN}`` placeholders."""
        with self._connect() as conn:
            return _query_all(conn, self.backend, sql, tuple(params))

    def _init_schema(self) -> None:
        with self._connect() as conn:
            _execute_script(
                conn,
                self.backend,
                """
                CREATE TABLE IF NOT EXISTS cm_actor (
                    actor_id TEXT PRIMARY KEY,
                    tier TEXT NOT NULL,
                    display_name TEXT NOT NULL,
                    bank_id TEXT,
                    window_id TEXT,
                    commission_policy_json TEXT,
                    updated_at_utc TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS cm_lottery (
                    lottery_id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS cm_draw (
                    draw_id TEXT PRIMARY KEY,
                    lottery_id TEXT NOT NULL,
                    display_name TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS cm_ticket (
                    ticket_id TEXT PRIMARY KEY,
                    window_id TEXT NOT NULL,
                    seller_id TEXT,
                    lottery_id TEXT NOT NULL,
                    draw_id TEXT NOT NULL,
                    business_date TEXT NOT NULL,
                    status TEXT NOT NULL,
                    is_active INTEGER NOT NULL,
                    deleted_at_utc TEXT,
                    created_at_utc TEXT NOT NULL,
                    record_digest TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS ix_cm_ticket_business_date
                    ON cm_ticket (business_date, window_id);
                CREATE INDEX IF NOT EXISTS ix_cm_ticket_seller
                    ON cm_ticket (seller_id, business_date);
                CREATE TABLE IF NOT EXISTS cm_jugada (
                    jugada_id TEXT PRIMARY KEY,
                    ticket_id TEXT NOT NULL,
                    bet_type TEXT NOT NULL,
                    final_multiplier DOUBLE PRECISION,
                    amount NUMERIC(14, 2) NOT NULL,
                    commission_percent DOUBLE PRECISION,
                    commission_amount NUMERIC(14, 2),
                    commission_origin TEXT,
                    commission_rule_id TEXT,
                    listero_commission_amount NUMERIC(14, 2),
                    deleted_at_utc TEXT,
                    recorded_at_utc TEXT NOT NULL,
                    record_digest TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS ix_cm_jugada_ticket
                    ON cm_jugada (ticket_id)
                """,
            )

    @contextmanager
    def _connect(self) -> Iterator[Any]:
        if self.backend == "sqlite":
            conn: Any = sqlite3.connect(_sqlite_path(self.locator))
        else:
            conn = psycopg.connect(self.locator)
        try:
            yield conn
        finally:
            conn.close()


def _policy_to_text(policy: Any | None) -> str | None:
    if policy is None:
        return None
    if isinstance(policy, str):
        return policy
    if isinstance(policy, Mapping):
        return json.dumps(dict(policy), sort_keys=True, ensure_ascii=True, separators=(",", ":"))
    raise CommissionStoreError("commission_policy must be a mapping, JSON text or None")


def _sqlite_path(locator: str) -> str:
    if locator.startswith("sqlite:///"):
        return locator[len("sqlite:///") :]
    if locator.startswith("sqlite://"):
        return locator[len("sqlite://") :]
    return locator


_SQL_PARAM_PATTERN = re.compile(r"\{p(?P<index>\d+)\}")


def _render_sql_with_params(sql: str, backend: str, params: tuple[Any, ...]) -> tuple[str, tuple[Any, ...]]:
    ordered_params: list[Any] = []
    placeholder = "%s" if backend == "postgres" else "?"

    def _replace(match: re.Match[str]) -> str:
        index = int(match.group("index"))
        if index <= 0 or index > len(params):
            raise CommissionStoreError(f"SQL placeholder index p{index} out of range for {len(params)} params")
        ordered_params.append(params[index - 1])
        return placeholder

    rendered = _SQL_PARAM_PATTERN.sub(_replace, sql)
    return rendered, tuple(ordered_params)


def _query_one(conn: Any, backend: str, sql: str, params: tuple[Any, ...]) -> Any:
    rendered, ordered_params = _render_sql_with_params(sql, backend, params)
    if backend == "sqlite":
        cur = conn.execute(rendered, ordered_params)
        return cur.fetchone()
    cur = conn.cursor()
    cur.execute(rendered, ordered_params)
    row = cur.fetchone()
    cur.close()
    return row


def _query_all(conn: Any, backend: str, sql: str, params: tuple[Any, ...]) -> list[Any]:
    rendered, ordered_params = _render_sql_with_params(sql, backend, params)
    if backend == "sqlite":
        cur = conn.execute(rendered, ordered_params)
        return list(cur.fetchall())
    cur = conn.cursor()
    cur.execute(rendered, ordered_params)
    rows = list(cur.fetchall())
    cur.close()
    return rows


def _execute(conn: Any, backend: str, sql: str, params: tuple[Any, ...]) -> None:
    rendered, ordered_params = _render_sql_with_params(sql, backend, params)
    if backend == "sqlite":
        conn.execute(rendered, ordered_params)
        conn.commit()
        return
    cur = conn.cursor()
    cur.execute(rendered, ordered_params)
    conn.commit()
    cur.close()


def _execute_script(conn: Any, backend: str, sql: str) -> None:
    if backend == "sqlite":
        conn.executescript(sql)
        conn.commit()
        return
    cur = conn.cursor()
    for statement in [part.strip() for part in sql.split(";") if part.strip()]:
        cur.execute(statement)
    conn.commit()
    cur.close()


def _digest(payload: Mapping[str, Any]) -> str:
    canonical = json.dumps(dict(payload), sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _iso_date(value: date | str) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()[:10]).isoformat()
    except ValueError as exc:
        raise CommissionStoreError(f"business_date must be an ISO date: {value!r}") from exc


def _require_id(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise CommissionStoreError(f"{field_name} must be non-empty")
    return text


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat().replace("+00:00", "Z")
