"""Tests for TTS engine registry and engines."""

import asyncio
import sys
import types
from unittest.mock import MagicMock, patch

import pytest

from epub2m4b.models import TTSConfig, VoiceInfo
from epub2m4b.tts import ENGINE_REGISTRY, get_engine, import_engines, list_engines
from epub2m4b.tts.base import TTSEngine


class TestEngineRegistry:
    def test_engines_registered(self):
        import_engines()
        assert "edge" in ENGINE_REGISTRY
        assert "piper" in ENGINE_REGISTRY

    def test_get_engine_returns_instance(self):
        import_engines()
        engine = get_engine("edge")
        assert isinstance(engine, TTSEngine)
        assert engine.name == "Edge TTS"
        assert engine.output_format == "mp3"

    def test_get_engine_unknown_raises(self):
        with pytest.raises(ValueError, match="Engine sconosciuto"):
            get_engine("non_esiste")

    def test_list_engines(self):
        import_engines()
        assert "edge" in list_engines()


class TestEdgeEngine:
    def test_short_text_no_split(self):
        from epub2m4b.tts.edge_engine import EdgeTTSEngine
        assert len(EdgeTTSEngine._split_text("Ciao mondo.")) == 1

    def test_long_text_splits_at_sentences(self):
        from epub2m4b.tts.edge_engine import MAX_CHUNK_CHARS, EdgeTTSEngine
        text = "Questa è una frase di test. " * 200
        chunks = EdgeTTSEngine._split_text(text)
        assert len(chunks) > 1
        for chunk in chunks:
            assert len(chunk) <= MAX_CHUNK_CHARS
            assert chunk.endswith(".")

    def test_speed_to_rate(self):
        from epub2m4b.tts.edge_engine import EdgeTTSEngine
        assert EdgeTTSEngine._speed_to_rate(1.0) == "+0%"
        assert EdgeTTSEngine._speed_to_rate(1.2) == "+20%"
        assert EdgeTTSEngine._speed_to_rate(0.8) == "-20%"

    def test_default_voice_per_language(self):
        from epub2m4b.tts.edge_engine import EdgeTTSEngine
        engine = EdgeTTSEngine()
        assert engine.default_voice("en") == "en-US-AriaNeural"
        assert engine.default_voice("xx") == "it-IT-IsabellaNeural"

    def test_synthesize_collects_audio_messages(self):
        from epub2m4b.tts.edge_engine import EdgeTTSEngine

        class FakeCommunicate:
            instances = []

            def __init__(self, text, voice, rate, pitch):
                self.args = (text, voice, rate, pitch)
                FakeCommunicate.instances.append(self)

            async def stream(self):
                yield {"type": "WordBoundary", "offset": 0}
                yield {"type": "audio", "data": b"mp3-"}
                yield {"type": "audio", "data": b"frames"}

        fake_module = types.SimpleNamespace(Communicate=FakeCommunicate)
        with patch.dict(sys.modules, {"edge_tts": fake_module}):
            audio = asyncio.run(EdgeTTSEngine().synthesize(
                "Ciao.", TTSConfig(voice="", speed=1.1, language="it"),
            ))

        assert audio == b"mp3-frames"
        assert FakeCommunicate.instances[0].args == ("Ciao.", "it-IT-IsabellaNeural", "+10%", "+0Hz")

    def test_list_voices_filters_by_language(self):
        from epub2m4b.tts.edge_engine import EdgeTTSEngine

        async def list_voices():
            return [
                {"ShortName": "it-IT-IsabellaNeural", "Locale": "it-IT", "Gender": "Female"},
                {"ShortName": "en-US-AriaNeural", "Locale": "en-US", "Gender": "Female"},
                {"ShortName": "it-IT-DiegoNeural", "Locale": "it-IT", "Gender": "Male"},
            ]

        fake_module = types.SimpleNamespace(list_voices=list_voices)
        with patch.dict(sys.modules, {"edge_tts": fake_module}):
            voices = asyncio.run(EdgeTTSEngine().list_voices("it"))

        assert voices == [
            VoiceInfo("it-IT-DiegoNeural", "it-IT", "Male"),
            VoiceInfo("it-IT-IsabellaNeural", "it-IT", "Female"),
        ]


class TestPiperEngine:
    def test_list_voices_from_catalog(self):
        from epub2m4b.tts.piper_engine import PiperTTSEngine
        voices = asyncio.run(PiperTTSEngine().list_voices("it"))
        assert {v.name for v in voices} == {"it_IT-paola-medium", "it_IT-riccardo-x_low"}

    def test_unknown_voice_raises(self, tmp_path):
        from epub2m4b.tts.piper_engine import _ensure_model
        with pytest.raises(ValueError, match="Voce Piper sconosciuta"):
            _ensure_model("xx_XX-nessuno", tmp_path)

    def test_synthesize_returns_wav_bytes(self, tmp_path):
        from epub2m4b.tts.piper_engine import PiperTTSEngine

        def synthesize_wav(text, wav_file, syn_config=None):
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(22050)
            wav_file.writeframes(b"\x00\x00" * 10)

        voice = MagicMock()
        voice.synthesize_wav.side_effect = synthesize_wav
        fake_piper = types.SimpleNamespace(
            PiperVoice=MagicMock(),
            SynthesisConfig=lambda length_scale: {"length_scale": length_scale},
        )
        fake_piper.PiperVoice.load.return_value = voice

        model = tmp_path / "it_IT-paola-medium.onnx"
        model.write_bytes(b"onnx")
        (tmp_path / "it_IT-paola-medium.onnx.json").write_text("{}")

        engine = PiperTTSEngine(models_dir=tmp_path)
        with patch.dict(sys.modules, {"piper": fake_piper}):
            audio = asyncio.run(engine.synthesize("Ciao.", TTSConfig(voice="", speed=2.0)))
            asyncio.run(engine.synthesize("Ancora.", TTSConfig(voice="", speed=2.0)))

        assert audio.startswith(b"RIFF")
        fake_piper.PiperVoice.load.assert_called_once_with(str(model), str(model) + ".json")
        assert voice.synthesize_wav.call_args.kwargs["syn_config"] == {"length_scale": 0.5}
