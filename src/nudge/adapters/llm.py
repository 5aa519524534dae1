from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import requests

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


class OracleError(Exception):
    """The completion endpoint could not produce a usable reply."""


@dataclass
class LLMRequest:
    user: str
    system: str | None = None
    max_tokens: int = 500


@dataclass
class LLMResponse:
    text: str


@dataclass
class LLMClient:
    """OpenAI-compatible chat completions client (Groq by default)."""

    api_base: str
    api_key: str
    model: str = "llama-3.3-70b-versatile"
    timeout_sec: int = 30

    def generate(self, req: LLMRequest) -> LLMResponse:
        messages = []
        if req.system:
            messages.append({"role": "system", "content": req.system})
        messages.append({"role": "user", "content": req.user})
        payload = {
            "model": self.model,
            "max_tokens": req.max_tokens,
            "messages": messages,
        }
        headers = {"authorization": f"Bearer {self.api_key}"}
        try:
            resp = requests.post(self.api_base, json=payload, headers=headers, timeout=self.timeout_sec)
            resp.raise_for_status()
            data = resp.json()
            text = data["choices"][0]["message"]["content"]
        except requests.RequestException as exc:
            raise OracleError(f"request failed: {exc}") from exc
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise OracleError(f"unexpected response shape: {exc}") from exc
        if not isinstance(text, str):
            raise OracleError("completion content is not text")
        return LLMResponse(text=text)


def parse_json_reply(text: str) -> Any:
    """Strip markdown code fences and parse the rest as JSON.

    Raises ValueError when the remainder is not valid JSON.
    """
    raw = _FENCE_RE.sub("", text or "").strip()
    return json.loads(raw)
