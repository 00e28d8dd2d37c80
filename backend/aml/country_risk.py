"""Country risk lists (corridor set, FATF lists) with as-at dates.

Loaded once from ``config/country_risk.yaml`` into an immutable value so
auditors can see which list version a ruleset was evaluated against.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

log = logging.getLogger("trancheready.aml.country_risk")

_CONFIG_PATH = Path(__file__).parent / "config" / "country_risk.yaml"


@dataclass(frozen=True)
class CountryRisk:
    version: str
    corridor: Tuple[str, ...]
    very_high_risk: Tuple[str, ...]
    increased_monitoring: Tuple[str, ...]
    sources: Tuple[Tuple[str, str], ...]

    def sources_dict(self) -> Dict[str, str]:
        return dict(self.sources)

    def source_date(self, key: str) -> str:
        return self.sources_dict().get(key, "")


def _codes(raw: Any) -> Tuple[str, ...]:
    return tuple(str(c).strip().upper() for c in (raw or []) if str(c).strip())


def parse_country_risk(data: Dict[str, Any]) -> CountryRisk:
    sources = data.get("sources") or {}
    return CountryRisk(
        version=str(data.get("version", "")),
        corridor=_codes(data.get("corridor")),
        very_high_risk=_codes(data.get("very_high_risk")),
        increased_monitoring=_codes(data.get("increased_monitoring")),
        sources=tuple((str(k), str(v)) for k, v in sources.items()),
    )


@lru_cache(maxsize=4)
def load_country_risk(path: Optional[Path] = None) -> CountryRisk:
    """Load and cache the country lists."""
    path = path or _CONFIG_PATH
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    risk = parse_country_risk(data)
    log.info("Loaded country risk lists v%s (%d corridor countries) from %s",
             risk.version, len(risk.corridor), path)
    return risk
