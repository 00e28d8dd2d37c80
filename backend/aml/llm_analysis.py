"""Optional one-sentence narrative for a client's risk result.

Builds a short prompt from the band and reasons already computed by the rule
engine and asks a local Ollama model to restate them in plain English.  The
narrative is decoration only: the scorer calls it through the ``Narrator``
interface and ignores any failure.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from ..ollama_client import OllamaClient, OllamaError, complete
from ..settings import Settings

log = logging.getLogger("trancheready.aml.llm_analysis")

NARRATIVE_SYSTEM = (
    "You are an AML compliance analyst at an Australian reporting entity. "
    "Write exactly one plain-English sentence. Do not invent facts, amounts "
    "or countries that are not in the input."
)
MAX_NARRATIVE_CHARS = 300

_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s")


def build_narrative_prompt(band: str, reasons: List[Dict[str, Any]]) -> str:
    """Prompt listing the band, scored reasons and context notes."""
    lines = [f"Risk band: {band}"]
    scored = [r for r in reasons if r.get("type") == "reason"]
    context = [r for r in reasons if r.get("type") == "context"]
    if scored:
        lines.append("Triggered rules:")
        for r in scored:
            lines.append(f"- [{r.get('family', '?')}] +{r.get('points', 0)}: {r.get('text', '')}")
    else:
        lines.append("Triggered rules: none")
    if context:
        lines.append("Context (no score impact):")
        for r in context:
            lines.append(f"- {r.get('text', '')}")
    lines.append("")
    lines.append("Summarise why this client received this band in one sentence.")
    return "\n".join(lines)


def first_sentence(text: str) -> str:
    """First sentence of a model reply, whitespace-collapsed and length-capped."""
    text = " ".join((text or "").split())
    if not text:
        return ""
    sentence = _SENTENCE_END_RE.split(text, maxsplit=1)[0]
    return sentence[:MAX_NARRATIVE_CHARS]


class OllamaNarrator:
    """Callable ``(band, reasons) -> Optional[str]`` backed by Ollama.

    Runs its own event loop per call, so it must be invoked from a worker
    thread (the pipeline runs in the threadpool), never from inside a loop.
    """

    def __init__(self, settings: Settings, client: Optional[OllamaClient] = None):
        self.model = settings.narrative_model
        self.client = client or OllamaClient(settings.ollama_url or None)

    async def _narrate(self, band: str, reasons: List[Dict[str, Any]]) -> str:
        return await complete(
            self.client,
            build_narrative_prompt(band, reasons),
            model=self.model,
            system=NARRATIVE_SYSTEM,
        )

    def __call__(self, band: str, reasons: List[Dict[str, Any]]) -> Optional[str]:
        try:
            reply = asyncio.run(self._narrate(band, reasons))
        except OllamaError as e:
            log.warning("Ollama narrative failed: %s", e)
            return None
        return first_sentence(reply) or None


def narrator_from_settings(settings: Settings) -> Optional[OllamaNarrator]:
    """Narrator when enabled in settings, else None."""
    if not settings.narrative_enabled:
        return None
    return OllamaNarrator(settings)
