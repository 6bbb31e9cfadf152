from __future__ import annotations

from pathlib import Path

import pytest

from lottery_commission.commission.contracts import CommissionSnapshot
from lottery_commission.reporting.storage import CommissionStore, JugadaRecord, TicketRecord


SELLER_POLICY = {
    "version": 1,
    "defaultPercent": 0,
    "rules": [
        {"id": "r-numero", "betType": "NUMERO", "percent": 10},
        {"id": "r-reventado", "betType": "REVENTADO", "percent": 5},
    ],
}


def _snapshot(percent: float, amount: float, origin: str, rule_id: str | None) -> CommissionSnapshot:
    return CommissionSnapshot(
        commission_percent=percent,
        commission_amount=amount,
        commission_origin=origin,
        commission_rule_id=rule_id,
    )


@pytest.fixture
def seeded_store(tmp_path: Path) -> CommissionStore:
    """Two windows, one seller, two lotteries.

    T1 (W1/S1/L1, 03-01, ACTIVE):    J1 NUMERO 100 @10% seller, listero 5; J2 REVENTADO 50 @5% seller
    T2 (W1/S1/L1, 03-02, EVALUATED): J3 NUMERO 200 @10% seller, listero 10
    T3 (W2/-/L2,  03-02, PAID):      J4 NUMERO 80 @5% window, listero 4
    T4 (W1/S1/L1, 03-03, CANCELLED): J5 NUMERO 1000 @10% seller
    """
    store = CommissionStore(locator=str(tmp_path / "commission.sqlite"))
    store.upsert_actor(actor_id="W1", tier="WINDOW", display_name="Ventana Centro", bank_id="B1")
    store.upsert_actor(actor_id="W2", tier="WINDOW", display_name="Ventana Norte", bank_id="B2")
    store.upsert_actor(
        actor_id="S1",
        tier="SELLER",
        display_name="Vendedor Uno",
        bank_id="B1",
        window_id="W1",
        commission_policy=SELLER_POLICY,
    )
    store.upsert_lottery(lottery_id="L1", display_name="Tica")
    store.upsert_lottery(lottery_id="L2", display_name="Nica")
    store.upsert_draw(draw_id="D1", lottery_id="L1", display_name="Tica 13:00")
    store.upsert_draw(draw_id="D2", lottery_id="L2", display_name="Nica 18:00")

    tickets = [
        TicketRecord("T1", "W1", "L1", "D1", "2026-03-01", seller_id="S1", status="ACTIVE"),
        TicketRecord("T2", "W1", "L1", "D1", "2026-03-02", seller_id="S1", status="EVALUATED"),
        TicketRecord("T3", "W2", "L2", "D2", "2026-03-02", seller_id=None, status="PAID"),
        TicketRecord("T4", "W1", "L1", "D1", "2026-03-03", seller_id="S1", status="CANCELLED", is_active=False),
    ]
    for ticket in tickets:
        store.record_ticket(ticket)

    jugadas = [
        JugadaRecord("J1", "T1", "NUMERO", 100.0, _snapshot(10.0, 10.0, "SELLER", "r-numero"), 70.0, 5.0),
        JugadaRecord("J2", "T1", "REVENTADO", 50.0, _snapshot(5.0, 2.5, "SELLER", "r-reventado"), 200.0, 0.0),
        JugadaRecord("J3", "T2", "NUMERO", 200.0, _snapshot(10.0, 20.0, "SELLER", "r-numero"), 70.0, 10.0),
        JugadaRecord("J4", "T3", "NUMERO", 80.0, _snapshot(5.0, 4.0, "WINDOW", None), 70.0, 4.0),
        JugadaRecord("J5", "T4", "NUMERO", 1000.0, _snapshot(10.0, 100.0, "SELLER", "r-numero"), 70.0, 50.0),
    ]
    for jugada in jugadas:
        store.append_jugada(jugada)
    return store
