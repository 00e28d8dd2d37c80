"""Client and transaction normalization.

Converts header-mapped CSV rows into typed Client / Transaction records,
rejects transaction rows that cannot be scored, and derives the 18-month
lookback window shared by the scorer and the case builder.
"""

from __future__ import annotations

import calendar
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .column_mapper import CLIENT_FIELDS, TX_FIELDS, map_headers

log = logging.getLogger("trancheready.aml.normalize")

LOOKBACK_MONTHS = 18
REJECT_REASON = "Missing client_id/date/amount"

_TRUTHY = frozenset({"true", "yes", "y", "1"})
_AMOUNT_JUNK_RE = re.compile(r"[^0-9.\-]")

# Keyword sets for direction / method classification (substring match)
OUT_KEYWORDS = ("out", "debit", "send")
IN_KEYWORDS = ("in", "credit", "receive")
CASH_KEYWORDS = ("cash", "notes", "cash_deposit", "branch_cash")
METHOD_KEYWORDS = (
    ("cash", CASH_KEYWORDS),
    ("wire", ("wire", "swift", "intl")),
    ("eft", ("eft", "ach", "transfer")),
    ("cheque", ("cheque", "check")),
    ("money_order", ("mo", "money order")),
)


@dataclass(frozen=True)
class Client:
    """One row of the client roster after header mapping."""

    client_id: str
    full_name: Optional[str] = None
    dob: Optional[str] = None
    residency_country: Optional[str] = None    # ISO-2, upper-case
    delivery_channel: Optional[str] = None
    services: Optional[str] = None
    pep_flag: bool = False
    sanctions_flag: bool = False
    kyc_last_reviewed_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)  # unmapped columns

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "client_id": self.client_id,
            "full_name": self.full_name,
            "dob": self.dob,
            "residency_country": self.residency_country,
            "delivery_channel": self.delivery_channel,
            "services": self.services,
            "pep_flag": self.pep_flag,
            "sanctions_flag": self.sanctions_flag,
            "kyc_last_reviewed_at": self.kyc_last_reviewed_at,
        }
        for k, v in self.extra.items():
            out.setdefault(k, v)
        return out


@dataclass(frozen=True)
class Transaction:
    """Validated ledger entry ready for the rules engine."""

    client_id: str
    date: str                      # YYYY-MM-DD
    amount: float
    tx_id: Optional[str] = None
    currency: str = "AUD"
    direction: Optional[str] = None  # in | out | None
    method: Optional[str] = None     # cash | wire | eft | cheque | money_order | raw token
    counterparty_name: Optional[str] = None
    counterparty_country: Optional[str] = None
    matter_id: Optional[str] = None

    @property
    def day(self) -> date:
        return date.fromisoformat(self.date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "client_id": self.client_id,
            "date": self.date,
            "amount": self.amount,
            "currency": self.currency,
            "direction": self.direction,
            "method": self.method,
            "counterparty_name": self.counterparty_name,
            "counterparty_country": self.counterparty_country,
            "matter_id": self.matter_id,
        }


@dataclass(frozen=True)
class Lookback:
    """Inclusive analysis window [start, end]."""

    start: date
    end: date
    months: int = LOOKBACK_MONTHS

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "months": self.months}


@dataclass
class ClientBatch:
    clients: List[Client]
    header_map: Dict[str, str]


@dataclass
class TransactionBatch:
    txs: List[Transaction]
    rejects: List[Dict[str, Any]]
    header_map: Dict[str, str]
    lookback: Lookback


# ------------------------------------------------------------------ coercion

def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional(value: Any) -> Optional[str]:
    s = _text(value)
    return s or None


def truthy(value: Any) -> bool:
    """Flag columns: true/yes/y/1 (any case) are set, everything else is not."""
    return _text(value).lower() in _TRUTHY


def _utc_date(dt: datetime) -> date:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO calendar date or datetime. Returns None when unparseable.

    Timestamps with an offset (or a trailing "Z") count on their UTC date.
    """
    if isinstance(value, datetime):
        return _utc_date(value)
    if isinstance(value, date):
        return value
    s = _text(value)
    if not s:
        return None
    if s[-1] in "zZ":
        s = s[:-1] + "+00:00"
    try:
        return _utc_date(datetime.fromisoformat(s))
    except ValueError:
        pass
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def parse_amount(value: Any) -> Optional[float]:
    """Parse an amount, ignoring currency symbols and thousands separators.

    "A$9,700.00" -> 9700.0.  Empty, unparseable or non-finite -> None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        cleaned = _AMOUNT_JUNK_RE.sub("", str(value))
        if not cleaned:
            return None
        try:
            amount = float(cleaned)
        except ValueError:
            return None
    return amount if math.isfinite(amount) else None


def classify_direction(value: Any) -> Optional[str]:
    raw = _text(value).lower()
    if not raw:
        return None
    if any(k in raw for k in OUT_KEYWORDS):
        return "out"
    if any(k in raw for k in IN_KEYWORDS):
        return "in"
    if raw in ("in", "out"):
        return raw
    return None


def classify_method(value: Any) -> Optional[str]:
    raw = _text(value).lower()
    if not raw:
        return None
    for method, keywords in METHOD_KEYWORDS:
        if any(k in raw for k in keywords):
            return method
    return raw


def _country(value: Any) -> Optional[str]:
    return _text(value).upper() or None


# ------------------------------------------------------------------ dates

def subtract_months(d: date, months: int) -> date:
    """Calendar-month subtraction, clamping the day to the target month's length."""
    total = d.year * 12 + (d.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def days_between(a: Any, b: Any) -> Optional[int]:
    da, db = parse_date(a), parse_date(b)
    if da is None or db is None:
        return None
    return abs((da - db).days)


def months_between(a: Any, b: Any) -> Optional[int]:
    """Whole 30-day months between two dates (order-insensitive)."""
    d = days_between(a, b)
    return None if d is None else d // 30


def compute_lookback(txs: Sequence[Transaction], today: Optional[date] = None) -> Lookback:
    """18-month window ending at the latest transaction date (or today)."""
    end = max((t.day for t in txs), default=None)
    if end is None:
        end = today or datetime.now(timezone.utc).date()
    return Lookback(start=subtract_months(end, LOOKBACK_MONTHS), end=end)


# ------------------------------------------------------------------ batches

def normalize_clients(rows: List[Mapping[str, Any]]) -> ClientBatch:
    """Header-map and type the client roster."""
    mapped, header_map = map_headers(rows, CLIENT_FIELDS)
    clients: List[Client] = []
    for r in mapped:
        clients.append(Client(
            client_id=_text(r.get("client_id")),
            full_name=_optional(r.get("full_name")),
            dob=_optional(r.get("dob")),
            residency_country=_country(r.get("residency_country")),
            delivery_channel=_optional(r.get("delivery_channel")),
            services=_optional(r.get("services")),
            pep_flag=truthy(r.get("pep_flag")),
            sanctions_flag=truthy(r.get("sanctions_flag")),
            kyc_last_reviewed_at=_optional(r.get("kyc_last_reviewed_at")),
            extra={k: v for k, v in r.items() if k not in CLIENT_FIELDS},
        ))
    log.info("Normalized %d clients", len(clients))
    return ClientBatch(clients=clients, header_map=header_map)


def normalize_transactions(
    rows: List[Mapping[str, Any]],
    today: Optional[date] = None,
) -> TransactionBatch:
    """Header-map, coerce and validate the transaction ledger.

    Rows without a client_id, a parseable date or a finite amount go to
    ``rejects`` (with the original row) and are excluded from everything
    downstream.
    """
    mapped, header_map = map_headers(rows, TX_FIELDS)
    txs: List[Transaction] = []
    rejects: List[Dict[str, Any]] = []

    for i, (original, r) in enumerate(zip(rows, mapped)):
        client_id = _text(r.get("client_id"))
        d = parse_date(r.get("date"))
        amount = parse_amount(r.get("amount"))

        if not client_id or d is None or amount is None:
            rejects.append({"index": i, "reason": REJECT_REASON, "row": dict(original)})
            continue

        txs.append(Transaction(
            tx_id=_optional(r.get("tx_id")),
            client_id=client_id,
            date=d.isoformat(),
            amount=amount,
            currency=_text(r.get("currency")).upper() or "AUD",
            direction=classify_direction(r.get("direction")),
            method=classify_method(r.get("method")),
            counterparty_name=_optional(r.get("counterparty_name")),
            counterparty_country=_country(r.get("counterparty_country")),
            matter_id=_optional(r.get("matter_id")),
        ))

    if rejects:
        log.warning("Rejected %d of %d transaction rows", len(rejects), len(rows))
    lookback = compute_lookback(txs, today=today)
    log.info("Accepted %d transactions, lookback %s..%s", len(txs), lookback.start, lookback.end)
    return TransactionBatch(txs=txs, rejects=rejects, header_map=header_map, lookback=lookback)
