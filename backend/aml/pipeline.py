"""AML evidence pipeline: end-to-end orchestration.

clients.csv + transactions.csv → parse → header mapping → coerce/validate →
lookback → rules → cases → program.html → manifest (+ signature) → zip.

Every stage is a pure function of the previous one; the only inputs that
vary between identical uploads are the manifest timestamp and signature.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from ..settings import Settings
from .bundle import zip_named_buffers
from .cases import build_cases
from .country_risk import CountryRisk, load_country_risk
from .csv_reader import read_csv_rows
from .manifest import build_manifest
from .normalize import Lookback, normalize_clients, normalize_transactions
from .report import generate_program_html
from .rules import ClientScore, Narrator, score_all

log = logging.getLogger("trancheready.aml.pipeline")

MANIFEST_NAME = "manifest.json"


@dataclass
class EvidenceBundle:
    """Everything one upload produces."""

    files: Dict[str, bytes]          # artifacts in bundle order, manifest.json last
    manifest: Dict[str, Any]
    zip_bytes: bytes
    scores: List[ClientScore]
    cases: List[Dict[str, Any]]
    rejects: List[Dict[str, Any]]
    lookback: Lookback
    rules_meta: Dict[str, Any] = field(default_factory=dict)

    def risk(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.scores]


def _json_bytes(obj: Any) -> bytes:
    return json.dumps(obj, indent=2, ensure_ascii=False).encode("utf-8")


def run_aml_pipeline(
    clients_csv: bytes,
    transactions_csv: bytes,
    *,
    settings: Optional[Settings] = None,
    narrator: Optional[Narrator] = None,
    log_cb=None,
    risk: Optional[CountryRisk] = None,
    today: Optional[date] = None,
    created_utc: Optional[str] = None,
) -> EvidenceBundle:
    """Run the full pipeline on two uploaded CSV files.

    Args:
        clients_csv: Raw bytes of the client roster
        transactions_csv: Raw bytes of the transaction ledger
        settings: Signing key and key id (defaults: unsigned)
        narrator: Optional one-sentence summarizer per client
        log_cb: Optional progress callback
        risk: Country lists (defaults to the bundled YAML)
        today: Window end when no transaction is accepted
        created_utc: Fixed manifest timestamp (replays, tests)

    Raises:
        CSVParseError: when either file is not a readable CSV.
    """
    settings = settings or Settings()
    risk = risk or load_country_risk()
    t0 = time.time()

    def _log(msg: str):
        log.info(msg)
        if log_cb:
            try:
                log_cb(msg)
            except Exception:
                pass

    # --- Step 1: Parse CSV ---
    _log("Parsing CSV uploads...")
    client_rows = read_csv_rows(clients_csv, source="clients.csv")
    tx_rows = read_csv_rows(transactions_csv, source="transactions.csv")

    # --- Step 2: Normalize ---
    _log("Normalizing clients and transactions...")
    client_batch = normalize_clients(client_rows)
    tx_batch = normalize_transactions(tx_rows, today=today)
    lookback = tx_batch.lookback
    _log(f"{len(client_batch.clients)} clients, {len(tx_batch.txs)} transactions, "
         f"{len(tx_batch.rejects)} rejects; window {lookback.start}..{lookback.end}")

    # --- Step 3: Score ---
    _log("Scoring clients...")
    result = score_all(client_batch.clients, tx_batch.txs, lookback, narrator=narrator, risk=risk)

    # --- Step 4: Cases ---
    _log("Building cases...")
    cases = build_cases(tx_batch.txs, lookback, risk=risk)
    _log(f"{len(cases)} cases")

    # --- Step 5: Artifacts ---
    _log("Rendering evidence files...")
    program_html = generate_program_html(
        scores=result.scores,
        cases=cases,
        rules_meta=result.rules_meta,
        lookback=lookback,
        client_header_map=client_batch.header_map,
        tx_header_map=tx_batch.header_map,
        rejects=tx_batch.rejects,
    )
    files: Dict[str, bytes] = {
        "clients.json": _json_bytes([c.to_dict() for c in client_batch.clients]),
        "transactions.json": _json_bytes([t.to_dict() for t in tx_batch.txs]),
        "cases.json": _json_bytes(cases),
        "program.html": program_html.encode("utf-8"),
    }

    # --- Step 6: Manifest ---
    _log("Building manifest...")
    manifest = build_manifest(
        files,
        result.rules_meta,
        signing_key=settings.sign_private_key or None,
        key_id=settings.sign_key_id,
        created_utc=created_utc,
    )
    bundle_files = dict(files)
    bundle_files[MANIFEST_NAME] = _json_bytes(manifest)

    # --- Step 7: Zip ---
    zip_bytes = zip_named_buffers(bundle_files)

    dt = time.time() - t0
    _log(f"Evidence bundle ready ({len(zip_bytes)} bytes) in {dt:.2f}s")

    return EvidenceBundle(
        files=bundle_files,
        manifest=manifest,
        zip_bytes=zip_bytes,
        scores=result.scores,
        cases=cases,
        rejects=tx_batch.rejects,
        lookback=lookback,
        rules_meta=result.rules_meta,
    )
