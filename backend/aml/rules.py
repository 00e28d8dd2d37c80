"""Deterministic AML risk rules with explainability.

Every client is scored by three rule families (profile, behaviour, corridor).
Each triggered rule contributes points plus a human-readable reason; each
family total is capped before the families are summed:

    score = min(profile, 20) + min(behavior, 25) + min(corridor, 20)
    band  = High (>= 30) | Medium (>= 15) | Low

Country-list context notes are appended after the corridor rule and never
change the score.  The typology predicates below are shared with the case
builder so cases and reasons always agree.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from .country_risk import CountryRisk, load_country_risk
from .normalize import LOOKBACK_MONTHS, Client, Lookback, Transaction, months_between

log = logging.getLogger("trancheready.aml.rules")

RULESET_ID = "dnfbp-2025.11-starter"

FAMILY_CAPS = {"profile": 20, "behavior": 25, "corridor": 20}
HIGH_BAND_MIN = 30
MEDIUM_BAND_MIN = 15

STRUCTURING_MIN_AMOUNT = 9600
STRUCTURING_MAX_AMOUNT = 9999
STRUCTURING_COUNT = 4
STRUCTURING_WINDOW_DAYS = 7
LARGE_DOMESTIC_MIN_AMOUNT = 100000
CORRIDOR_MIN_COUNT = 2
CORRIDOR_LARGE_AMOUNT = 20000
KYC_STALE_MONTHS = 12

_WINDOW_EPSILON = 1e-9
_HIGH_RISK_SERVICES_RE = re.compile(r"remittance|property|real ?estate", re.I)

# Rule texts (also used as case descriptions)
STRUCTURING_TEXT = "Structuring: ≥4 cash deposits A$9,600–9,999 within 7 days"
LARGE_DOMESTIC_TEXT = "Large domestic transfer ≥ A$100k"


class ScoreReason:
    """A triggered rule: contributes points to one family."""
    __slots__ = ("family", "points", "text")

    def __init__(self, family: str, points: int, text: str):
        self.family = family
        self.points = points
        self.text = text

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "reason", "family": self.family, "points": self.points, "text": self.text}


class ContextNote:
    """Informational note with no score impact."""
    __slots__ = ("text",)

    def __init__(self, text: str):
        self.text = text

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "context", "text": self.text}


Reason = Union[ScoreReason, ContextNote]

# (band, reasons as dicts) -> optional one-sentence narrative
Narrator = Callable[[str, List[Dict[str, Any]]], Optional[str]]


@dataclass
class ClientScore:
    client_id: str
    score: int
    band: str
    reasons: List[Reason] = field(default_factory=list)
    family_totals: Dict[str, int] = field(default_factory=dict)  # raw, before caps
    narrative: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "client_id": self.client_id,
            "score": self.score,
            "band": self.band,
            "reasons": [r.to_dict() for r in self.reasons],
        }
        if self.narrative:
            out["narrative"] = self.narrative
        return out


@dataclass
class ScoringResult:
    scores: List[ClientScore]
    rules_meta: Dict[str, Any]


# ------------------------------------------------------------------ predicates

def in_window(txs: Iterable[Transaction], lookback: Lookback) -> List[Transaction]:
    return [t for t in txs if lookback.contains(t.day)]


def structuring_candidates(txs: Iterable[Transaction]) -> List[Transaction]:
    """Cash deposits just under the A$10k reporting threshold (document order)."""
    return [
        t for t in txs
        if t.direction == "in" and t.method == "cash"
        and STRUCTURING_MIN_AMOUNT <= t.amount <= STRUCTURING_MAX_AMOUNT
    ]


def has_n_in_window(txs: Sequence[Transaction], required: int, window_days: int) -> bool:
    """True if any `required` consecutive transactions (by date) span < window_days.

    Every sliding run of exactly `required` sorted dates is tested.
    """
    if len(txs) < required:
        return False
    days = sorted(t.day for t in txs)
    for i in range(len(days) - required + 1):
        span = float((days[i + required - 1] - days[i]).days)
        if span <= window_days - _WINDOW_EPSILON:
            return True
    return False


def is_structuring(candidates: Sequence[Transaction]) -> bool:
    return has_n_in_window(candidates, STRUCTURING_COUNT, STRUCTURING_WINDOW_DAYS)


def large_domestic_transfers(txs: Iterable[Transaction]) -> List[Transaction]:
    return [
        t for t in txs
        if t.direction == "out" and t.amount >= LARGE_DOMESTIC_MIN_AMOUNT
        and (not t.counterparty_country or t.counterparty_country == "AU")
    ]


def corridor_transfers(txs: Iterable[Transaction], corridor: Sequence[str]) -> List[Transaction]:
    return [t for t in txs if t.direction == "out" and t.counterparty_country in corridor]


def corridor_triggered(corridor_txs: Sequence[Transaction]) -> bool:
    return (len(corridor_txs) >= CORRIDOR_MIN_COUNT
            and any(t.amount >= CORRIDOR_LARGE_AMOUNT for t in corridor_txs))


def unique_countries(txs: Iterable[Transaction]) -> List[str]:
    """Distinct counterparty countries in first-occurrence order."""
    seen: Dict[str, None] = {}
    for t in txs:
        if t.counterparty_country:
            seen.setdefault(t.counterparty_country, None)
    return list(seen)


def corridor_rule_text(corridor: Sequence[str]) -> str:
    return f"≥2 transfers to {'/'.join(corridor)} with ≥1 ≥ A$20k"


# ------------------------------------------------------------------ scoring

def band_for(score: int) -> str:
    if score >= HIGH_BAND_MIN:
        return "High"
    if score >= MEDIUM_BAND_MIN:
        return "Medium"
    return "Low"


def capped_total(family_totals: Dict[str, int]) -> int:
    return sum(min(family_totals.get(f, 0), cap) for f, cap in FAMILY_CAPS.items())


def ruleset_meta(risk: Optional[CountryRisk] = None) -> Dict[str, Any]:
    risk = risk or load_country_risk()
    return {
        "id": RULESET_ID,
        "lookback_months": LOOKBACK_MONTHS,
        "bands": {"High": f"≥{HIGH_BAND_MIN}", "Medium": f"≥{MEDIUM_BAND_MIN}", "Low": f"<{MEDIUM_BAND_MIN}"},
        "caps": dict(FAMILY_CAPS),
        "corridor_countries": list(risk.corridor),
        "sources": risk.sources_dict(),
    }


def score_client(
    client: Client,
    txs: Sequence[Transaction],
    lookback: Lookback,
    risk: Optional[CountryRisk] = None,
) -> ClientScore:
    """Score one client against its in-window transactions.

    Args:
        client: Normalized client record
        txs: This client's transactions, already limited to the lookback window
        lookback: Analysis window (its end anchors KYC staleness)
        risk: Country lists (defaults to the bundled YAML)
    """
    risk = risk or load_country_risk()
    reasons: List[Reason] = []
    family: Dict[str, int] = {f: 0 for f in FAMILY_CAPS}

    def add(fam: str, points: int, text: str) -> None:
        reasons.append(ScoreReason(fam, points, text))
        family[fam] += points

    # --- Profile ---
    if client.pep_flag:
        add("profile", 30, "PEP flag present")
    if client.sanctions_flag:
        add("profile", 30, "Sanctions flag present (DFAT/Consolidated)")
    if client.kyc_last_reviewed_at:
        months = months_between(client.kyc_last_reviewed_at, lookback.end)
        if months is not None and months >= KYC_STALE_MONTHS:
            add("profile", 10, f"KYC last reviewed {months} months ago (≥{KYC_STALE_MONTHS})")
    if client.services and _HIGH_RISK_SERVICES_RE.search(client.services):
        add("profile", 8, "Higher-risk services (remittance/property)")
    if client.residency_country and client.residency_country != "AU":
        add("profile", 6, f"Non-resident ({client.residency_country})")

    # --- Behaviour ---
    if is_structuring(structuring_candidates(txs)):
        add("behavior", 25, STRUCTURING_TEXT)
    if large_domestic_transfers(txs):
        add("behavior", 15, LARGE_DOMESTIC_TEXT)

    # --- Corridor ---
    corridor_txs = corridor_transfers(txs, risk.corridor)
    countries = unique_countries(corridor_txs)
    if corridor_triggered(corridor_txs):
        add("corridor", 20,
            f"High-risk corridor: {len(corridor_txs)} transfers to {','.join(countries)} (≥1 ≥ A$20k)")

    # --- Country list context (no points) ---
    for cc in countries:
        if cc in risk.very_high_risk:
            reasons.append(ContextNote(
                f"Destination {cc} on FATF call-for-action "
                f"(as-at {risk.source_date('fatf_call_for_action_as_at')})"))
        elif cc in risk.increased_monitoring:
            reasons.append(ContextNote(
                f"Destination {cc} on FATF increased monitoring "
                f"(as-at {risk.source_date('fatf_grey_list_as_at')})"))

    total = capped_total(family)
    return ClientScore(
        client_id=client.client_id or "unknown",
        score=total,
        band=band_for(total),
        reasons=reasons,
        family_totals=family,
    )


def _attach_narrative(result: ClientScore, narrator: Narrator) -> None:
    """Best-effort enrichment: failures leave the score untouched."""
    try:
        text = narrator(result.band, [r.to_dict() for r in result.reasons])
    except Exception as e:
        log.warning("Narrative skipped for client %s: %s", result.client_id, e)
        return
    if isinstance(text, str) and text.strip():
        result.narrative = text.strip()


def score_all(
    clients: Sequence[Client],
    txs: Sequence[Transaction],
    lookback: Lookback,
    narrator: Optional[Narrator] = None,
    risk: Optional[CountryRisk] = None,
) -> ScoringResult:
    """Score every client.  Returns scores in roster order plus ruleset metadata."""
    risk = risk or load_country_risk()
    by_client: Dict[str, List[Transaction]] = defaultdict(list)
    for t in in_window(txs, lookback):
        by_client[t.client_id].append(t)

    scores: List[ClientScore] = []
    for client in clients:
        result = score_client(client, by_client.get(client.client_id, []), lookback, risk)
        if narrator is not None:
            _attach_narrative(result, narrator)
        scores.append(result)

    bands: Dict[str, int] = defaultdict(int)
    for s in scores:
        bands[s.band] += 1
    log.info("Scored %d clients (High=%d, Medium=%d, Low=%d)",
             len(scores), bands["High"], bands["Medium"], bands["Low"])
    return ScoringResult(scores=scores, rules_meta=ruleset_meta(risk))
