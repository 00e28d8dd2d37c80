"""AML risk scoring and evidence bundles for TrancheReady.

Provides:
- Header normalization for client rosters and transaction ledgers
- Transaction coercion/validation and the 18-month lookback window
- Deterministic rule-based scoring with capped families and explainability
- Case derivation (structuring, corridor, large domestic)
- SHA-256 evidence manifest with optional Ed25519 signature
- Program summary page and zipped evidence bundle
"""
