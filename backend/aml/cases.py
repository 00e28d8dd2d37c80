"""Case builder: one case per (client, typology) that fires in the window.

Re-scans the windowed ledger independently of the scorer, using the same
predicates from ``rules`` so cases.json and score reasons stay consistent.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from .country_risk import CountryRisk, load_country_risk
from .normalize import Lookback, Transaction
from .rules import (
    STRUCTURING_WINDOW_DAYS,
    corridor_rule_text,
    corridor_transfers,
    corridor_triggered,
    in_window,
    is_structuring,
    large_domestic_transfers,
    structuring_candidates,
    unique_countries,
)

log = logging.getLogger("trancheready.aml.cases")

MAX_SAMPLES = 5


def pick_tx(t: Transaction) -> Dict[str, Any]:
    """Reduced transaction reference used as case evidence."""
    return {
        "tx_id": t.tx_id,
        "date": t.date,
        "amount": t.amount,
        "currency": t.currency,
        "method": t.method,
        "counterparty_country": t.counterparty_country,
    }


def _samples(txs: Sequence[Transaction]) -> List[Dict[str, Any]]:
    return [pick_tx(t) for t in txs[:MAX_SAMPLES]]


def build_cases(
    txs: Sequence[Transaction],
    lookback: Lookback,
    risk: Optional[CountryRisk] = None,
) -> List[Dict[str, Any]]:
    """Emit structuring / corridor / large_domestic cases per client.

    Clients appear in first-occurrence order of the ledger; samples keep
    document order.
    """
    risk = risk or load_country_risk()
    by_client: Dict[str, List[Transaction]] = {}
    for t in in_window(txs, lookback):
        by_client.setdefault(t.client_id, []).append(t)

    cases: List[Dict[str, Any]] = []
    for client_id, client_txs in by_client.items():
        cash_in = structuring_candidates(client_txs)
        if is_structuring(cash_in):
            cases.append({
                "type": "structuring",
                "client_id": client_id,
                "rule": "≥4 cash deposits A$9,600–9,999 within 7 days",
                "tx_count": len(cash_in),
                "window_days": STRUCTURING_WINDOW_DAYS,
                "samples": _samples(cash_in),
            })

        corridor = corridor_transfers(client_txs, risk.corridor)
        if corridor_triggered(corridor):
            cases.append({
                "type": "corridor",
                "client_id": client_id,
                "rule": corridor_rule_text(risk.corridor),
                "tx_count": len(corridor),
                "countries": unique_countries(corridor),
                "samples": _samples(corridor),
            })

        large = large_domestic_transfers(client_txs)
        if large:
            cases.append({
                "type": "large_domestic",
                "client_id": client_id,
                "rule": "Domestic transfer ≥ A$100k",
                "tx_count": len(large),
                "samples": _samples(large),
            })

    log.info("Built %d cases for %d clients", len(cases), len(by_client))
    return cases
