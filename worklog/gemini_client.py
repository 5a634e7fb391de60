from __future__ import annotations

from pathlib import Path

import google.generativeai as genai
from PIL import Image

from .config import ConfigError, LLMSettings


class GeminiBackend:
    """Hosted classifier backend on the Gemini API; one request per call, no retries."""

    def __init__(self, settings: LLMSettings, log):
        if not settings.gemini_api_key:
            raise ConfigError("GEMINI_API_KEY is required for the gemini provider")
        self._settings = settings
        self._logger = log
        genai.configure(api_key=settings.gemini_api_key)
        self._vision_model = genai.GenerativeModel(settings.vision_model)
        self._text_model = genai.GenerativeModel(settings.text_model)

    def complete(self, prompt: str, image_path: Path | None = None, *, vision: bool = False) -> str:
        generation_config = {
            "max_output_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }
        request_options = {"timeout": self._settings.timeout_seconds}

        if vision and image_path is not None:
            if not image_path.exists():
                raise FileNotFoundError(image_path)
            with Image.open(image_path) as image:
                response = self._vision_model.generate_content(
                    [prompt, image],
                    generation_config=generation_config,
                    request_options=request_options,
                )
        else:
            response = self._text_model.generate_content(
                [prompt],
                generation_config=generation_config,
                request_options=request_options,
            )
        return response.text or ""
