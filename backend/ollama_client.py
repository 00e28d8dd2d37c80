"""Minimal async Ollama HTTP client.

We use Ollama's REST API directly (httpx) rather than the optional `ollama`
Python package.

Default base URL: http://127.0.0.1:11434
Override via settings (ollama_url) or env: OLLAMA_HOST
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import httpx

DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"


class OllamaError(RuntimeError):
    pass


class OllamaClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = 30.0) -> None:
        self.base_url = (base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL).rstrip("/")
        self.timeout = timeout

    async def _request_json(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=timeout if timeout is not None else self.timeout) as client:
                r = await client.request(method, url, json=payload)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as e:
            raise OllamaError(f"Ollama HTTP {e.response.status_code}: {e.response.text[:200]}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise OllamaError(f"Ollama request failed: {e}") from e

    async def list_model_names(self) -> List[str]:
        data = await self._request_json("GET", "/api/tags", None, timeout=5.0)
        out: List[str] = []
        for m in data.get("models", []) or []:
            name = m.get("name")
            if isinstance(name, str) and name:
                out.append(name)
        return sorted(set(out))

    async def chat(self, model: str, messages: List[Dict[str, str]], *, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": model, "messages": messages, "stream": False}
        if options:
            payload["options"] = options
        return await self._request_json("POST", "/api/chat", payload)


async def complete(client: OllamaClient, prompt: str, *, model: str, system: Optional[str] = None, options: Optional[Dict[str, Any]] = None) -> str:
    """Single non-streaming chat turn; returns the assistant text."""
    msgs: List[Dict[str, str]] = []
    if system:
        msgs.append({"role": "system", "content": system})
    msgs.append({"role": "user", "content": prompt})
    resp = await client.chat(model=model, messages=msgs, options=options or {"temperature": 0.2})
    return str((resp.get("message") or {}).get("content") or "")
