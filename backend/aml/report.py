"""Program summary page (program.html) for the evidence bundle.

Sections:
1. Ruleset (id, lookback, bands, caps, corridor, list sources)
2. Analysis window
3. Client risk table with reasons
4. Case counts
5. Header mapping (clients + transactions)
6. Row rejects

The page carries no generation timestamp: identical uploads must give an
identical file (and therefore an identical manifest hash).
"""

from __future__ import annotations

import html
import json
import logging
from collections import Counter
from typing import Any, List, Mapping, Optional, Sequence

from ..settings import APP_NAME, APP_VERSION
from .normalize import Lookback
from .rules import ClientScore

log = logging.getLogger("trancheready.aml.report")

_REPORT_CSS = """
<style>
:root{--bg:#f8f9fa;--card:#fff;--border:#dee2e6;--text:#212529;--muted:#6c757d;
--danger:#dc3545;--warning:#ffc107;--success:#198754;--primary:#0d6efd}
*{box-sizing:border-box;margin:0;padding:0}
body{font-family:'Segoe UI',system-ui,-apple-system,sans-serif;background:var(--bg);color:var(--text);line-height:1.5;padding:20px;max-width:1200px;margin:0 auto}
h1{font-size:1.8em;margin-bottom:5px}h2{font-size:1.4em;margin:25px 0 10px;border-bottom:2px solid var(--primary);padding-bottom:5px}
.meta{color:var(--muted);font-size:.85em;margin-bottom:15px}
.card{background:var(--card);border:1px solid var(--border);border-radius:8px;padding:15px;margin-bottom:15px}
.badge{display:inline-block;padding:2px 8px;border-radius:12px;font-size:.75em;font-weight:600;margin:1px}
.badge-High{background:#f8d7da;color:#842029}.badge-Medium{background:#fff3cd;color:#664d03}
.badge-Low{background:#d1e7dd;color:#0f5132}
table{width:100%;border-collapse:collapse;font-size:.85em}
th{background:#e9ecef;text-align:left;padding:8px;border-bottom:2px solid var(--border)}
td{padding:6px 8px;border-bottom:1px solid var(--border);vertical-align:top}
ul.reasons{list-style:none}
ul.reasons li.context{color:var(--muted);font-style:italic}
pre{background:#f1f3f5;border-radius:6px;padding:10px;font-size:.8em;overflow:auto}
.footer{text-align:center;color:var(--muted);font-size:.75em;margin-top:30px;padding-top:15px;border-top:1px solid var(--border)}
</style>
"""


def _e(val: Any) -> str:
    return html.escape("" if val is None else str(val))


def _pre(obj: Any) -> str:
    return f"<pre>{_e(json.dumps(obj, indent=2, ensure_ascii=False))}</pre>"


def _reasons_html(score: ClientScore) -> str:
    if not score.reasons:
        return '<span class="meta">No rules triggered</span>'
    items = []
    for r in score.reasons:
        d = r.to_dict()
        if d["type"] == "context":
            items.append(f'<li class="context">{_e(d["text"])}</li>')
        else:
            items.append(f'<li>+{d["points"]} [{_e(d["family"])}] {_e(d["text"])}</li>')
    return '<ul class="reasons">' + "".join(items) + "</ul>"


def generate_program_html(
    scores: Sequence[ClientScore],
    cases: Sequence[Mapping[str, Any]],
    rules_meta: Mapping[str, Any],
    lookback: Lookback,
    client_header_map: Optional[Mapping[str, str]] = None,
    tx_header_map: Optional[Mapping[str, str]] = None,
    rejects: Optional[Sequence[Mapping[str, Any]]] = None,
    title: str = "TrancheReady Evidence",
) -> str:
    """Render the self-contained program summary page.

    Returns:
        Complete HTML string.
    """
    rejects = list(rejects or [])
    parts: List[str] = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '<meta charset="utf-8">',
        '<meta name="viewport" content="width=device-width, initial-scale=1">',
        f"<title>{_e(title)}</title>",
        _REPORT_CSS,
        "</head>",
        "<body>",
        f"<h1>{_e(title)}</h1>",
        f'<p class="meta">Ruleset: {_e(rules_meta.get("id"))} | '
        f'Window: {_e(lookback.start.isoformat())} to {_e(lookback.end.isoformat())} | '
        f"Clients: {len(scores)} | Cases: {len(cases)}</p>",
    ]

    # --- Ruleset ---
    parts.append("<h2>1. Ruleset</h2>")
    parts.append('<div class="card">')
    parts.append(f'<p>Lookback: {_e(rules_meta.get("lookback_months"))} months</p>')
    bands = rules_meta.get("bands") or {}
    parts.append("<p>Bands: " + ", ".join(f"{_e(k)} {_e(v)}" for k, v in bands.items()) + "</p>")
    caps = rules_meta.get("caps") or {}
    parts.append("<p>Family caps: " + ", ".join(f"{_e(k)} {_e(v)}" for k, v in caps.items()) + "</p>")
    parts.append("<p>Corridor countries: " + _e(", ".join(rules_meta.get("corridor_countries") or [])) + "</p>")
    sources = rules_meta.get("sources") or {}
    if sources:
        parts.append("<p>List sources:</p><ul>")
        for k, v in sources.items():
            parts.append(f"<li>{_e(k)}: {_e(v)}</li>")
        parts.append("</ul>")
    parts.append("</div>")

    # --- Window ---
    parts.append("<h2>2. Analysis window</h2>")
    parts.append(f'<div class="card">{_e(lookback.start.isoformat())} to '
                 f'{_e(lookback.end.isoformat())} ({lookback.months} months)</div>')

    # --- Risk table ---
    parts.append("<h2>3. Client risk</h2>")
    parts.append("<table><thead><tr><th>Client</th><th>Score</th><th>Band</th>"
                 "<th>Reasons</th></tr></thead><tbody>")
    for s in scores:
        narrative = f'<p class="meta">{_e(s.narrative)}</p>' if s.narrative else ""
        parts.append(
            f"<tr><td>{_e(s.client_id)}</td>"
            f"<td>{s.score}</td>"
            f'<td><span class="badge badge-{_e(s.band)}">{_e(s.band)}</span></td>'
            f"<td>{_reasons_html(s)}{narrative}</td></tr>"
        )
    parts.append("</tbody></table>")

    # --- Cases ---
    parts.append("<h2>4. Cases</h2>")
    counts = Counter(c.get("type") for c in cases)
    if counts:
        parts.append("<table><thead><tr><th>Type</th><th>Count</th></tr></thead><tbody>")
        for case_type in ("structuring", "corridor", "large_domestic"):
            if counts.get(case_type):
                parts.append(f"<tr><td>{_e(case_type)}</td><td>{counts[case_type]}</td></tr>")
        parts.append("</tbody></table>")
    else:
        parts.append('<p class="meta">No cases in the analysis window.</p>')

    # --- Header mapping ---
    parts.append("<h2>5. Header mapping</h2>")
    parts.append("<h3>Clients</h3>" + _pre(dict(client_header_map or {})))
    parts.append("<h3>Transactions</h3>" + _pre(dict(tx_header_map or {})))

    # --- Rejects ---
    parts.append(f"<h2>6. Row rejects ({len(rejects)})</h2>")
    parts.append(_pre(rejects) if rejects else '<p class="meta">None.</p>')

    parts.append(f'<div class="footer">{_e(APP_NAME)} v{_e(APP_VERSION)} | '
                 f'Deterministic ruleset {_e(rules_meta.get("id"))}</div>')
    parts.append("</body></html>")

    log.debug("program.html: %d clients, %d cases, %d rejects", len(scores), len(cases), len(rejects))
    return "\n".join(parts)
