"""Tests for the command-line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from epub2m4b.cli import build_parser, main
from epub2m4b.models import Book, TTSConfig, VoiceInfo


@pytest.fixture
def epub_file(tmp_path):
    path = tmp_path / "libro.epub"
    path.write_bytes(b"PK")
    return path


@pytest.fixture
def pipeline():
    """Patch parser, converter and progress bar; yield the mocks."""
    book = Book(file_name="libro", title="Libro")
    with (
        patch("epub2m4b.epub_parser.EpubParser") as parser_cls,
        patch("epub2m4b.converter.BookConverter") as converter_cls,
        patch("epub2m4b.progress.ProgressReporter") as reporter_cls,
    ):
        parser_cls.return_value.parse.return_value = book
        converter_cls.return_value.convert = AsyncMock()
        yield MagicMock(
            book=book,
            parser=parser_cls,
            convert=converter_cls.return_value.convert,
            reporter=reporter_cls,
        )


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["libro.epub"])
        assert args.engine == "edge"
        assert args.bitrate == "64k"
        assert args.language == "it"
        assert args.work_dir is None

    def test_missing_input_errors(self):
        with pytest.raises(SystemExit):
            main([])

    def test_non_epub_rejected(self, tmp_path):
        path = tmp_path / "libro.txt"
        path.write_text("x")
        with pytest.raises(SystemExit):
            main([str(path)])


class TestMain:
    def test_converts_with_default_output_and_voice(self, epub_file, pipeline, tmp_path):
        work_dir = tmp_path / "lavoro"
        main([str(epub_file), "-w", str(work_dir)])

        config, book, output, temp_dir, sink = pipeline.convert.await_args.args
        assert config == TTSConfig(voice="it-IT-IsabellaNeural", speed=1.0, language="it")
        assert book is pipeline.book
        assert output == epub_file.with_suffix(".m4b")
        assert temp_dir == work_dir
        assert sink is pipeline.reporter.return_value
        pipeline.reporter.return_value.close.assert_called_once()
        assert work_dir.is_dir()

    def test_temporary_work_dir_removed_after_success(self, epub_file, pipeline, tmp_path):
        temp = tmp_path / "e2m_tmp"
        with patch("epub2m4b.cli.tempfile.mkdtemp", return_value=str(temp)):
            main([str(epub_file), str(tmp_path / "out.m4b")])
        assert not temp.exists()

    def test_failure_keeps_work_dir_and_exits(self, epub_file, pipeline, tmp_path):
        pipeline.convert.side_effect = RuntimeError("ffmpeg fallito")
        temp = tmp_path / "e2m_tmp"
        with patch("epub2m4b.cli.tempfile.mkdtemp", return_value=str(temp)):
            with pytest.raises(SystemExit) as exc_info:
                main([str(epub_file)])
        assert exc_info.value.code == 1
        assert temp.is_dir()


class TestListVoices:
    def test_lists_voices_through_converter(self, capsys):
        voices = [VoiceInfo("it-IT-DiegoNeural", "it-IT", "Male")]
        with patch("epub2m4b.converter.BookConverter") as converter_cls:
            converter_cls.return_value.get_voices = AsyncMock(return_value=voices)
            with patch("epub2m4b.tts.edge_engine.EdgeTTSEngine.initialize"):
                with pytest.raises(SystemExit) as exc_info:
                    main(["--list-voices", "-l", "it"])

        assert exc_info.value.code == 0
        converter_cls.return_value.get_voices.assert_awaited_once_with("it")
        assert "it-IT-DiegoNeural" in capsys.readouterr().out
