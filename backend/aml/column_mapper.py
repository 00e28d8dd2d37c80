"""Column header mapping for client and transaction CSV uploads.

Spreadsheets exported from practice-management and banking systems name the
same field in many ways ("CustomerID", "client id", "cust_no"...).  Each
canonical field owns a set of accepted lower-case aliases; a header resolves
to the first canonical field (in declaration order) whose alias set contains
it.  Unknown headers are kept under their lower-cased name, never dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Tuple

log = logging.getLogger("trancheready.aml.column_mapper")

Vocabulary = Mapping[str, FrozenSet[str]]

# Canonical client fields -> accepted header aliases (lower-case)
CLIENT_FIELDS: Vocabulary = {
    "client_id": frozenset({"client_id", "clientid", "customer_id", "customerid", "id"}),
    "full_name": frozenset({"full_name", "name", "client_name", "fullname"}),
    "dob": frozenset({"dob", "date_of_birth", "birthdate"}),
    "residency_country": frozenset({"residency_country", "country", "country_of_residence", "residence_country"}),
    "delivery_channel": frozenset({"delivery_channel", "channel", "onboarding_channel"}),
    "services": frozenset({"services", "service", "products"}),
    "pep_flag": frozenset({"pep", "pep_flag", "is_pep"}),
    "sanctions_flag": frozenset({"sanctions", "sanctions_flag", "is_sanctioned"}),
    "kyc_last_reviewed_at": frozenset({"kyc_last_reviewed_at", "kyc_date", "kyc_last_reviewed", "last_kyc"}),
}

# Canonical transaction fields -> accepted header aliases (lower-case)
TX_FIELDS: Vocabulary = {
    "tx_id": frozenset({"tx_id", "transaction_id", "id"}),
    "client_id": frozenset({"client_id", "clientid", "customer_id", "customerid"}),
    "date": frozenset({"date", "tx_date", "timestamp", "posted_at"}),
    "amount": frozenset({"amount", "amt", "value"}),
    "currency": frozenset({"currency", "ccy"}),
    "direction": frozenset({"direction", "dr_cr", "in_out", "flow"}),
    "method": frozenset({"method", "instrument", "channel"}),
    "counterparty_name": frozenset({"counterparty_name", "payer_name", "payee_name", "beneficiary"}),
    "counterparty_country": frozenset({
        "counterparty_country", "cp_country", "country_to", "country_from",
        "destination_country", "origin_country",
    }),
    "matter_id": frozenset({"matter_id", "file_id", "case_id", "engagement_id"}),
}


def _lower(value: Any) -> str:
    return ("" if value is None else str(value)).strip().lower()


def resolve_header(name: Any, vocabulary: Vocabulary) -> str:
    """Map one header to its canonical field name (or its lower-cased self)."""
    key = _lower(name)
    for canonical, aliases in vocabulary.items():
        if key in aliases:
            return canonical
    return key


def build_header_map(columns: Iterable[Any], vocabulary: Vocabulary) -> Dict[str, str]:
    """Return {original header: canonical name} for audit."""
    return {str(col): resolve_header(col, vocabulary) for col in columns}


def map_row(row: Mapping[str, Any], vocabulary: Vocabulary) -> Dict[str, Any]:
    """Re-key a row by canonical names.  The first column mapping to a name wins."""
    out: Dict[str, Any] = {}
    for key, value in row.items():
        canonical = resolve_header(key, vocabulary)
        if canonical not in out:
            out[canonical] = value
    return out


def map_headers(
    rows: List[Mapping[str, Any]],
    vocabulary: Vocabulary,
) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    """Normalize the headers of a whole row set.

    The header map is taken from the first row's keys.

    Returns:
        (re-keyed rows, {original header: canonical name})
    """
    if not rows:
        return [], {}

    header_map = build_header_map(rows[0].keys(), vocabulary)
    unmatched = [orig for orig, canon in header_map.items() if canon not in vocabulary]
    if unmatched:
        log.info("Unmapped columns kept as-is: %s", ", ".join(unmatched))
    return [map_row(r, vocabulary) for r in rows], header_map
