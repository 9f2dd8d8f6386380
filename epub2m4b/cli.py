"""Command-line interface for epub2m4b."""

import argparse
import asyncio
import logging
import shutil
import sys
import tempfile
from pathlib import Path

from epub2m4b import __version__
from epub2m4b.models import TTSConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="epub2m4b",
        description="Converti libri EPUB in audiobook M4B",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "input_file",
        nargs="?",
        help="File EPUB da convertire",
    )
    parser.add_argument(
        "output_file",
        nargs="?",
        help="File M4B di output (default: stesso nome dell'input con .m4b)",
    )
    parser.add_argument(
        "-e", "--engine",
        default="edge",
        choices=["edge", "piper"],
        help="Motore TTS da usare (default: edge)",
    )
    parser.add_argument(
        "-v", "--voice",
        default=None,
        help="Nome della voce (dipende dall'engine)",
    )
    parser.add_argument(
        "-s", "--speed",
        type=float,
        default=1.0,
        help="Velocità di lettura (default: 1.0)",
    )
    parser.add_argument(
        "--pitch",
        default=None,
        help="Regolazione pitch (dipende dall'engine, es. '+0Hz')",
    )
    parser.add_argument(
        "-l", "--language",
        default="it",
        help="Codice lingua (default: it)",
    )
    parser.add_argument(
        "--list-voices",
        action="store_true",
        help="Elenca le voci disponibili per l'engine selezionato ed esci",
    )
    parser.add_argument(
        "-b", "--bitrate",
        default="64k",
        help="Bitrate AAC per l'output M4B (default: 64k)",
    )
    parser.add_argument(
        "-w", "--work-dir",
        default=None,
        help="Directory per file intermedi (default: directory temporanea, rimossa a fine conversione)",
    )
    parser.add_argument(
        "--piper-model",
        default=None,
        help="Percorso a un modello Piper .onnx locale",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Abilita log dettagliati",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    from epub2m4b.tts import get_engine, import_engines
    import_engines()

    engine = get_engine(args.engine)
    if args.engine == "piper" and args.piper_model:
        engine.model_path = args.piper_model

    from epub2m4b.audio.m4b_builder import FFmpegAudioConverter
    from epub2m4b.converter import BookConverter

    converter = BookConverter(engine, FFmpegAudioConverter(bitrate=args.bitrate))

    if args.list_voices:
        engine.initialize()
        voices = asyncio.run(converter.get_voices(args.language))
        if not voices:
            print(f"Nessuna voce trovata per lingua '{args.language}' con engine '{args.engine}'")
            sys.exit(0)
        print(f"\nVoci disponibili ({engine.name}, lingua: {args.language}):\n")
        for v in voices:
            print(f"  {v.name:<35} {v.language:<10} {v.gender}")
        sys.exit(0)

    if not args.input_file:
        parser.error("Specificare il file EPUB da convertire")

    input_path = Path(args.input_file)
    if not input_path.exists():
        parser.error(f"File non trovato: {input_path}")
    if input_path.suffix.lower() != ".epub":
        parser.error(f"Il file deve essere un EPUB: {input_path}")

    output_path = Path(args.output_file) if args.output_file else input_path.with_suffix(".m4b")

    config = TTSConfig(
        voice=args.voice or engine.default_voice(args.language),
        speed=args.speed,
        pitch=args.pitch,
        language=args.language,
    )

    from epub2m4b.epub_parser import EpubParser
    from epub2m4b.progress import ProgressReporter

    keep_work_dir = args.work_dir is not None
    work_path = Path(args.work_dir) if keep_work_dir else Path(tempfile.mkdtemp(prefix="e2m_"))
    work_path.mkdir(parents=True, exist_ok=True)

    reporter = None
    try:
        logger.info("Parsing EPUB: %s", input_path)
        book = EpubParser(str(input_path)).parse()
        reporter = ProgressReporter(book)
        asyncio.run(converter.convert(config, book, output_path, work_path, reporter))
    except KeyboardInterrupt:
        print("\n\nConversione interrotta.")
        print(f"File intermedi in: {work_path}")
        sys.exit(1)
    except Exception as e:
        logger.error("Errore: %s", e)
        if args.verbose:
            logger.exception("Dettagli:")
        print(f"File intermedi in: {work_path}")
        sys.exit(1)
    finally:
        if reporter:
            reporter.close()

    if not keep_work_dir:
        shutil.rmtree(work_path, ignore_errors=True)

    print(f"\nAudiobook creato: {output_path}")


if __name__ == "__main__":
    main()
