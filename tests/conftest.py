"""Shared pytest fixtures for TrancheReady tests."""

from __future__ import annotations

import os
import sys
import tempfile
from datetime import date
from pathlib import Path

import pytest

# Ensure the project root is importable
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

# Override config directory so tests don't touch a real settings.json.
os.environ["TRANCHEREADY_CONFIG_DIR"] = tempfile.mkdtemp(prefix="trancheready_test_cfg_")
for _var in ("SIGN_PRIVATE_KEY", "SIGN_PUBLIC_KEY", "NARRATIVE_ENABLED", "APP_ORIGIN"):
    os.environ.pop(_var, None)


CLIENTS_CSV = (
    "CustomerID,Name,DOB,Country,Channel,Services,PEP,Sanctions,KYC_Date,Notes\n"
    "C001,Alice Brown,1980-02-01,AU,in_person,conveyancing,no,no,2025-01-10,\n"
    "C002,Bob Chen,1975-06-15,HK,online,remittance,yes,no,2023-01-01,vip\n"
    "C003,Carol Diaz,1990-11-30,au,online,property,N,Y,2025-03-01,\n"
)

TRANSACTIONS_CSV = (
    "Transaction_ID,CustomerID,Date,Amount,Currency,Direction,Method,Beneficiary,CP_Country,Matter_ID\n"
    # C001: structuring run (4 cash deposits within 6 days)
    "T1,C001,2025-03-01,\"A$9,700.00\",aud,credit,Cash Deposit,,au,M1\n"
    "T2,C001,2025-03-02,9800,AUD,in,cash,,AU,M1\n"
    "T3,C001,2025-03-04,9650,AUD,in,notes,,AU,M1\n"
    "T4,C001,2025-03-07,9999,AUD,in,branch_cash,,AU,M1\n"
    # C002: corridor (2 outbound to CN/RU, one >= 20k)
    "T5,C002,2025-04-01,25000,AUD,debit,SWIFT,Acme Ltd,CN,M2\n"
    "T6,C002,2025-04-10,1000,AUD,send,wire,Ivan Co,ru,M2\n"
    # C003: large domestic transfer
    "T7,C003,2025-05-01,150000,AUD,out,EFT,Vendor Pty,,M3\n"
    # Rejects: missing client, bad date, bad amount
    "T8,,2025-05-02,100,AUD,in,cash,,,\n"
    "T9,C003,not-a-date,100,AUD,in,cash,,,\n"
    "T10,C003,2025-05-03,n/a,AUD,in,cash,,,\n"
)


@pytest.fixture
def clients_csv() -> bytes:
    return CLIENTS_CSV.encode("utf-8")


@pytest.fixture
def transactions_csv() -> bytes:
    return TRANSACTIONS_CSV.encode("utf-8")


@pytest.fixture
def today() -> date:
    return date(2025, 6, 1)


@pytest.fixture
def keypair():
    """Fresh (private seed, public key) pair, base64."""
    from backend.aml.signing import generate_ed25519_keypair
    return generate_ed25519_keypair()
