"""
Gemini Client - Shared client for Gemini API.

Provides a centralized client for report condensation and TTS.
"""
import os
from pathlib import Path
from typing import Optional

from audioreport.config import Config, default_config


class GeminiClient:
    """
    Shared Gemini client for text generation and TTS.

    Uses the google.genai SDK with API key auth only.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or default_config
        self._content_client = None
        self._tts_client = None

    def _load_dotenv(self) -> None:
        try:
            from dotenv import load_dotenv
        except ImportError:
            return

        # Try repo root first, then cwd for local runs
        repo_env = Path(__file__).resolve().parents[3] / ".env"
        if repo_env.exists():
            load_dotenv(dotenv_path=repo_env)
        else:
            load_dotenv(dotenv_path=Path(".env"))

    def _create_client(self, vertexai: bool = False):
        """Create a Gemini API client."""
        try:
            from google import genai
        except ImportError:
            raise RuntimeError(
                "google-genai not installed. "
                "Install with: pip install google-genai"
            )
        self._load_dotenv()
        if vertexai:
            api_key = os.getenv("VERTEX_API_KEY")
        else:
            api_key = os.getenv("GEMINI_API_KEY")
        return genai.Client(
            vertexai=vertexai,
            api_key=api_key,
        )

    def _get_content_client(self):
        if self._content_client is None:
            self._content_client = self._create_client()
        return self._content_client

    def _get_tts_client(self):
        if self._tts_client is None:
            self._tts_client = self._create_client(vertexai=bool(os.getenv("VERTEX_API_KEY")))
        return self._tts_client

    async def generate_text_async(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.3,
    ) -> str:
        """
        Generate plain text with Gemini (async).

        Args:
            prompt: Full prompt text
            model: Model name (defaults to config.gemini_model)
            temperature: Sampling temperature

        Returns:
            The response text, stripped
        """
        from google.genai import types

        response = await self._get_content_client().aio.models.generate_content(
            model=model or self.config.gemini_model,
            contents=prompt,
            config=types.GenerateContentConfig(temperature=temperature),
        )
        return (getattr(response, "text", None) or "").strip()

    async def generate_speech_async(
        self,
        text: str,
        voice: str = "Kore",
    ) -> bytes:
        """Generate speech audio using Gemini TTS (async). Returns raw PCM."""
        from google.genai import types

        response = await self._get_tts_client().aio.models.generate_content(
            model=self.config.gemini_tts_model,
            contents=text,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(
                            voice_name=voice,
                        )
                    )
                ),
            ),
        )

        if not response.candidates:
            raise ValueError("Gemini TTS returned no candidates. Check safety settings or prompt.")

        return response.candidates[0].content.parts[0].inline_data.data
