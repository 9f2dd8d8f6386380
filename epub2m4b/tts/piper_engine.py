"""Piper TTS engine - fast, local neural TTS with auto-download of voice models."""

import asyncio
import io
import logging
import urllib.request
import wave
from pathlib import Path
from typing import Optional

from epub2m4b.models import TTSConfig, VoiceInfo
from epub2m4b.tts.base import TTSEngine
from epub2m4b.tts import register_engine

logger = logging.getLogger(__name__)

DEFAULT_MODELS_DIR = Path.home() / ".epub2m4b" / "piper-models"

# HuggingFace base URL for Piper voice models
HF_BASE = "https://huggingface.co/rhasspy/piper-voices/resolve/main"

# Voice catalog: voice_name → (hf_subpath, language, gender)
VOICE_CATALOG = {
    "it_IT-paola-medium": ("it/it_IT/paola/medium", "it", "Female"),
    "it_IT-riccardo-x_low": ("it/it_IT/riccardo/x_low", "it", "Male"),
    "en_US-lessac-medium": ("en/en_US/lessac/medium", "en", "Male"),
    "en_US-amy-medium": ("en/en_US/amy/medium", "en", "Female"),
    "es_ES-davefx-medium": ("es/es_ES/davefx/medium", "es", "Male"),
    "fr_FR-siwis-medium": ("fr/fr_FR/siwis/medium", "fr", "Female"),
    "de_DE-thorsten-medium": ("de/de_DE/thorsten/medium", "de", "Male"),
}

DEFAULT_VOICES = {
    "it": "it_IT-paola-medium",
    "en": "en_US-amy-medium",
    "es": "es_ES-davefx-medium",
    "fr": "fr_FR-siwis-medium",
    "de": "de_DE-thorsten-medium",
}


def _download_file(url: str, dest: Path) -> None:
    """Download a file, never leaving a partial file at ``dest``."""
    logger.info("Download: %s", url)
    dest.parent.mkdir(parents=True, exist_ok=True)

    tmp = dest.with_suffix(dest.suffix + ".tmp")
    try:
        urllib.request.urlretrieve(url, str(tmp))
        tmp.rename(dest)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def _ensure_model(voice_name: str, models_dir: Path) -> Path:
    """Ensure the voice model is downloaded, return path to .onnx file."""
    model_file = models_dir / f"{voice_name}.onnx"
    config_file = models_dir / f"{voice_name}.onnx.json"

    if model_file.exists() and config_file.exists():
        return model_file

    if voice_name not in VOICE_CATALOG:
        available = ", ".join(VOICE_CATALOG.keys())
        raise ValueError(
            f"Voce Piper sconosciuta: '{voice_name}'\n"
            f"Voci disponibili: {available}"
        )

    hf_subpath, _lang, _gender = VOICE_CATALOG[voice_name]
    logger.info("Scaricamento modello Piper '%s'...", voice_name)

    if not model_file.exists():
        _download_file(f"{HF_BASE}/{hf_subpath}/{voice_name}.onnx", model_file)
    if not config_file.exists():
        _download_file(f"{HF_BASE}/{hf_subpath}/{voice_name}.onnx.json", config_file)

    return model_file


@register_engine("piper")
class PiperTTSEngine(TTSEngine):
    """TTS engine using Piper - local neural text to speech.

    Voice models are downloaded automatically on first use from HuggingFace,
    unless ``model_path`` points at a local .onnx file.
    """

    def __init__(self, models_dir: Path = DEFAULT_MODELS_DIR):
        self.models_dir = models_dir
        self.model_path: Optional[str] = None
        self._voices: dict[str, object] = {}

    def initialize(self) -> None:
        try:
            from piper import PiperVoice  # noqa: F401
        except ImportError as e:
            raise RuntimeError(
                "piper-tts non installato. Installa con:\n"
                "  pip install 'epub2m4b[piper]'"
            ) from e

    def _load_voice(self, voice_name: str):
        from piper import PiperVoice

        if voice_name in self._voices:
            return self._voices[voice_name]

        if self.model_path:
            model_file = Path(self.model_path)
            if not model_file.exists():
                raise RuntimeError(f"Modello Piper non trovato: {model_file}")
        else:
            model_file = _ensure_model(voice_name, self.models_dir)

        logger.info("Caricamento modello Piper: %s", model_file.name)
        voice = PiperVoice.load(str(model_file), str(model_file.with_suffix(".onnx.json")))
        self._voices[voice_name] = voice
        return voice

    def _synthesize_blocking(self, text: str, config: TTSConfig) -> bytes:
        from piper import SynthesisConfig

        voice = self._load_voice(config.voice or self.default_voice(config.language))
        syn_config = SynthesisConfig(length_scale=1.0 / config.speed)

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            voice.synthesize_wav(text, wav_file, syn_config=syn_config)
        return buffer.getvalue()

    async def synthesize(self, text: str, config: TTSConfig) -> bytes:
        return await asyncio.to_thread(self._synthesize_blocking, text, config)

    async def list_voices(self, language: Optional[str] = None) -> list[VoiceInfo]:
        voices = []
        for name, (_, lang, gender) in VOICE_CATALOG.items():
            if language and lang != language:
                continue
            voices.append(VoiceInfo(name=name, language=lang, gender=gender))
        return voices

    def default_voice(self, language: str) -> str:
        return DEFAULT_VOICES.get(language, DEFAULT_VOICES["it"])

    @property
    def name(self) -> str:
        return "Piper TTS"

    @property
    def output_format(self) -> str:
        return "wav"
