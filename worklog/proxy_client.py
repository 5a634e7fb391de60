from __future__ import annotations

import base64
from pathlib import Path
from typing import Any

import requests

from .config import ConfigError, LLMSettings


class ProxyBackend:
    """Classifier backend for an OpenAI-compatible chat completions proxy.

    Endpoint used: POST {LLM_PROXY_URL}/v1/chat/completions
    """

    def __init__(self, settings: LLMSettings, log):
        if not settings.proxy_url:
            raise ConfigError("LLM_PROXY_URL is required for the proxy provider")
        if not settings.proxy_api_key:
            raise ConfigError("LLM_PROXY_API_KEY is required for the proxy provider")
        self._settings = settings
        self._logger = log
        self._url = f"{settings.proxy_url.rstrip('/')}/v1/chat/completions"

    def complete(self, prompt: str, image_path: Path | None = None, *, vision: bool = False) -> str:
        if vision and image_path is not None:
            content: Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image_as_data_url(image_path)}},
            ]
            model = self._settings.vision_model
        else:
            content = prompt
            model = self._settings.text_model

        payload = {
            "model": model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._settings.proxy_api_key}",
        }

        try:
            res = requests.post(self._url, headers=headers, json=payload, timeout=self._settings.timeout_seconds)
        except requests.RequestException as exc:
            raise RuntimeError(f"LLM proxy request failed: {exc}") from exc

        if res.status_code >= 400:
            raise RuntimeError(f"LLM proxy error: {res.status_code} - {res.text}")

        data = res.json()
        text = (((data.get("choices") or [{}])[0]).get("message") or {}).get("content")

        if isinstance(text, list):
            parts = [
                str(item.get("text") or "")
                for item in text
                if isinstance(item, dict) and item.get("type") == "text"
            ]
            text = "\n".join(p for p in parts if p)

        return text if isinstance(text, str) else ""


def image_as_data_url(image_path: Path) -> str:
    encoded = base64.b64encode(image_path.read_bytes()).decode("ascii")
    mime = "image/png" if image_path.suffix.lower() == ".png" else "image/jpeg"
    return f"data:{mime};base64,{encoded}"
