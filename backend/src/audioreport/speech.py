"""
Speech System - spoken-text normalization and TTS synthesis.

Text is normalized for the ear before it reaches a provider: markup is
stripped, units and acronyms are spelled out and numeric dates become
"October thirteenth twenty twenty-five". Providers return WAV bytes
(16-bit PCM, mono, 24 kHz).
"""
from __future__ import annotations

import asyncio
import io
import logging
import os
import re
import time
import wave
from datetime import datetime, timezone
from typing import Optional, Protocol, Union

import requests

from audioreport.config import Config, default_config, validate_credential
from audioreport.errors import SpeechSynthesisError, UpstreamError
from audioreport.gemini import GeminiClient

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

_ONES = [
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
]
_TENS = ["", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]
_ORDINAL_IRREGULAR = {
    "one": "first", "two": "second", "three": "third", "five": "fifth",
    "eight": "eighth", "nine": "ninth", "twelve": "twelfth",
}


def cardinal_words(n: int) -> str:
    """Spell out 0-99."""
    if not 0 <= n < 100:
        return str(n)
    if n < 20:
        return _ONES[n]
    tens, ones = divmod(n, 10)
    return _TENS[tens] + (f"-{_ONES[ones]}" if ones else "")


def ordinal_words(n: int) -> str:
    """Spell out 1-99 as an ordinal ("thirteenth", "twenty-first")."""
    words = cardinal_words(n)
    head, sep, last = words.rpartition("-")
    if last in _ORDINAL_IRREGULAR:
        last = _ORDINAL_IRREGULAR[last]
    elif last.endswith("y"):
        last = last[:-1] + "ieth"
    else:
        last += "th"
    return head + sep + last


def year_words(year: int) -> str:
    """Years the way they are read aloud: 2005 -> "two thousand five", 2025 -> "twenty twenty-five"."""
    century, rest = divmod(year, 100)
    if year == 2000:
        return "two thousand"
    if 2001 <= year <= 2009:
        return f"two thousand {cardinal_words(rest)}"
    if 1100 <= year <= 2099:
        if rest == 0:
            return f"{cardinal_words(century)} hundred"
        if rest < 10:
            return f"{cardinal_words(century)} oh {cardinal_words(rest)}"
        return f"{cardinal_words(century)} {cardinal_words(rest)}"
    return str(year)


def format_date_for_speech(value: Union[datetime, int, float]) -> str:
    """e.g. "October thirteenth twenty twenty-five"."""
    if not isinstance(value, datetime):
        value = datetime.fromtimestamp(value, tz=timezone.utc)
    return f"{MONTH_NAMES[value.month - 1]} {ordinal_words(value.day)} {year_words(value.year)}"


def _spoken_date(year: str, month: str, day: str, original: str) -> str:
    month_index, day_index = int(month), int(day)
    if not (1 <= month_index <= 12 and 1 <= day_index <= 31):
        return original
    return f"{MONTH_NAMES[month_index - 1]} {ordinal_words(day_index)} {year_words(int(year))}"


_MONTH_LOOKUP = {name[:3].lower(): index + 1 for index, name in enumerate(MONTH_NAMES)}

_EMOJI = re.compile("[\U0001F000-\U0001FAFF☀-➿⬀-⯿️‍]")
_CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE = re.compile(r"`([^`\n]*)`")
_MD_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_URL = re.compile(r"https?://\S+")
_HEADER = re.compile(r"^[ \t]*#{1,6}[ \t]*", re.MULTILINE)
_LIST_MARKER = re.compile(r"^[ \t]*(?:[-+*>•]|\d+\.)[ \t]+", re.MULTILINE)
_EMPHASIS = re.compile(r"[*~]+")

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_US_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
_NAMED_DATE = re.compile(
    r"\b(January|February|March|April|May|June|July|August|September|October|November|December"
    r"|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sept|Sep|Oct|Nov|Dec)\.?\s+(\d{1,2}),?\s+(\d{4})\b",
    re.IGNORECASE,
)

_NUMBER = r"(\d+(?:\.\d+)?)"
_UNIT_RULES = [
    (re.compile(_NUMBER + r" ?%"), r"\1 percent"),
    (re.compile(_NUMBER + r" ?ms\b"), r"\1 milliseconds"),
    (re.compile(_NUMBER + r" ?[Kk]bps\b"), r"\1 kilobits per second"),
    (re.compile(_NUMBER + r" ?[Mm]bps\b"), r"\1 megabits per second"),
    (re.compile(_NUMBER + r" ?[Gg]bps\b"), r"\1 gigabits per second"),
    (re.compile(_NUMBER + r" ?MB\b"), r"\1 megabytes"),
    (re.compile(_NUMBER + r" ?GB\b"), r"\1 gigabytes"),
    (re.compile(_NUMBER + r" ?fps\b"), r"\1 frames per second"),
    (re.compile(_NUMBER + r" ?min\b"), r"\1 minutes"),
    (re.compile(_NUMBER + r"s\b"), r"\1 seconds"),
    (re.compile(_NUMBER + r"h\b"), r"\1 hours"),
    (re.compile(r"(\d+)p\b"), r"\1 P"),
]

# Mixed-case terms are expanded before camelCase words are split apart.
_MIXED_CASE_TERMS = {
    "QoE": "quality of experience",
    "QoS": "quality of service",
    "WebRTC": "web R T C",
    "iOS": "i O S",
}
_ACRONYMS = {
    "CDNs": "content delivery networks",
    "CDN": "content delivery network",
    "VOD": "video on demand",
    "ABR": "adaptive bitrate",
    "DRM": "digital rights management",
    "VST": "video startup time",
    "UI": "user interface",
    "UX": "user experience",
    "ISPs": "I S Ps",
    "ISP": "I S P",
    "API": "A P I",
    "URLs": "U R Ls",
    "URL": "U R L",
    "HTTPS": "H T T P S",
    "HTTP": "H T T P",
    "HLS": "H L S",
    "DNS": "D N S",
    "TLS": "T L S",
    "SSL": "S S L",
    "TTL": "T T L",
    "RTMP": "R T M P",
    "MP4": "M P 4",
    "MP3": "M P 3",
    "HEVC": "H E V C",
    "AAC": "A A C",
    "VP9": "V P 9",
    "ID": "I D",
    "Id": "I D",
    "id": "I D",
}


def _word_pattern(terms) -> re.Pattern:
    alternation = "|".join(re.escape(term) for term in sorted(terms, key=len, reverse=True))
    return re.compile(rf"\b({alternation})\b")


_MIXED_CASE_PATTERN = _word_pattern(_MIXED_CASE_TERMS)
_ACRONYM_PATTERN = _word_pattern(_ACRONYMS)
_CAMEL_CASE = re.compile(r"([a-z])([A-Z])")
_SYMBOLS = re.compile(r"[\[\]{}()<>@#$^&+=|\\/%_`\"“”]")
_DASHES = re.compile(r"\s*[–—]\s*")


def _tidy_punctuation(text: str) -> str:
    # Joining a stray mark onto its neighbour can create a new run, so repeat until stable.
    while True:
        tidied = re.sub(r"\s+", " ", text)
        tidied = re.sub(r"\s+([,.!?])", r"\1", tidied)
        tidied = re.sub(r"\.{2,}", ".", tidied)
        tidied = re.sub(r",{2,}", ",", tidied)
        tidied = re.sub(r"([.!?]),+", r"\1", tidied)
        tidied = re.sub(r",+([.!?])", r"\1", tidied)
        if tidied == text:
            return tidied
        text = tidied


def normalize_for_speech(text: str) -> str:
    """
    Make report text speakable.

    Pure and idempotent: normalizing already-normalized text returns it unchanged.
    """
    out = _EMOJI.sub("", text or "")
    out = _CODE_BLOCK.sub(" ", out)
    out = _INLINE_CODE.sub(r"\1", out)
    out = _MD_LINK.sub(r"\1", out)
    out = _URL.sub(" ", out)
    out = _HEADER.sub("", out)
    out = _LIST_MARKER.sub("", out)
    out = _EMPHASIS.sub("", out)

    out = _ISO_DATE.sub(lambda m: _spoken_date(m.group(1), m.group(2), m.group(3), m.group(0)), out)
    out = _US_DATE.sub(lambda m: _spoken_date(m.group(3), m.group(1), m.group(2), m.group(0)), out)
    out = _NAMED_DATE.sub(
        lambda m: _spoken_date(
            m.group(3), str(_MONTH_LOOKUP[m.group(1)[:3].lower()]), m.group(2), m.group(0)
        ),
        out,
    )

    for pattern, replacement in _UNIT_RULES:
        out = pattern.sub(replacement, out)

    out = _MIXED_CASE_PATTERN.sub(lambda m: _MIXED_CASE_TERMS[m.group(1)], out)
    out = _CAMEL_CASE.sub(r"\1 \2", out)
    out = _ACRONYM_PATTERN.sub(lambda m: _ACRONYMS[m.group(1)], out)

    out = _SYMBOLS.sub(" ", out)
    out = _DASHES.sub(", ", out)
    out = re.sub(r"[;:]", ",", out)

    # Line breaks become pauses.
    out = re.sub(r"\s*\n\s*", ", ", out)
    out = re.sub(r"\.{3,}|…", ",", out)
    out = _tidy_punctuation(out)
    out = re.sub(r"([,.!?])(?=[A-Za-z])", r"\1 ", out)
    out = re.sub(r"^[\s,.;:!?-]+", "", out)
    return out.rstrip(" ,")


def pcm_to_wav(
    pcm: bytes,
    channels: int = 1,
    rate: int = 24000,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM audio data in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


class SpeechProvider(Protocol):
    async def synthesize(self, text: str) -> bytes:
        """Return WAV bytes for already-normalized text."""
        ...


class GeminiSpeechProvider:
    """Gemini TTS; PCM output is wrapped as WAV."""

    def __init__(self, client: Optional[GeminiClient] = None, config: Optional[Config] = None):
        self.config = config or default_config
        self.client = client or GeminiClient(self.config)

    async def synthesize(self, text: str) -> bytes:
        pcm = await self.client.generate_speech_async(text, self.config.tts_voice)
        return pcm_to_wav(pcm, rate=self.config.audio_sample_rate)


class ElevenLabsSpeechProvider:
    """ElevenLabs text-to-speech over REST."""

    service = "elevenlabs"

    def __init__(self, config: Optional[Config] = None):
        self.config = config or default_config

    async def synthesize(self, text: str) -> bytes:
        return await asyncio.to_thread(self._synthesize, text)

    def _synthesize(self, text: str) -> bytes:
        api_key = validate_credential(os.getenv("ELEVENLABS_API_KEY"), "ELEVENLABS_API_KEY")
        url = f"{self.config.elevenlabs_base_url.rstrip('/')}/text-to-speech/{self.config.elevenlabs_voice_id}"
        try:
            response = requests.post(
                url,
                headers={
                    "xi-api-key": api_key,
                    "Content-Type": "application/json",
                    "Accept": "application/octet-stream",
                },
                params={"output_format": f"pcm_{self.config.audio_sample_rate}"},
                json={
                    "text": text,
                    "model_id": self.config.elevenlabs_model_id,
                    "voice_settings": {
                        "stability": 0.5,
                        "similarity_boost": 0.75,
                        "use_speaker_boost": True,
                        "speed": 1.0,
                    },
                },
                timeout=(15, 180),
            )
        except requests.RequestException as exc:
            raise UpstreamError.from_transport(self.service, exc) from exc

        if response.status_code >= 400:
            raise UpstreamError.from_response(self.service, response.status_code, response.text or "")
        return pcm_to_wav(response.content, rate=self.config.audio_sample_rate) if response.content else b""


def create_speech_provider(config: Config, gemini_client: Optional[GeminiClient] = None) -> SpeechProvider:
    if config.tts_provider == "elevenlabs":
        return ElevenLabsSpeechProvider(config)
    if config.tts_provider == "gemini":
        return GeminiSpeechProvider(gemini_client, config)
    raise ValueError(f"Unsupported TTS provider '{config.tts_provider}'. Use 'gemini' or 'elevenlabs'.")


class SpeechSynthesizer:
    """Normalize text and turn it into audio bytes. Provider failures are not retried."""

    def __init__(self, provider: SpeechProvider):
        self.provider = provider

    async def synthesize(self, text: str) -> bytes:
        spoken = normalize_for_speech(text)
        if not spoken:
            raise SpeechSynthesisError("Report text is empty after speech normalization.")

        logger.info("[speech] start provider=%s chars=%d", type(self.provider).__name__, len(spoken))
        started = time.perf_counter()
        try:
            audio = await self.provider.synthesize(spoken)
        except SpeechSynthesisError:
            raise
        except Exception as exc:
            error = SpeechSynthesisError(f"Speech synthesis failed: {exc}")
            logger.error("[speech] %s", error)
            raise error from exc

        if not audio:
            raise SpeechSynthesisError("Speech synthesis returned an empty audio payload.")
        logger.info(
            "[speech] done bytes=%d elapsed_ms=%.0f",
            len(audio),
            (time.perf_counter() - started) * 1000,
        )
        return audio
