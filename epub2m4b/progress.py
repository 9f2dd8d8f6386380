"""Progress reporting for the conversion pipeline.

The converter emits a stream of :class:`ProgressUpdate` events; this module
turns each event plus the book being converted into an overall percentage.
"""

import enum
import logging
import math
from collections.abc import Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from tqdm import tqdm

from epub2m4b.models import Book, BookElement

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    """Pipeline stages, in execution order."""
    INSTALLING = "installing"
    CONVERT_TEXT_TO_WAV = "convert_text_to_wav"
    CONVERT_WAV_TO_AAC = "convert_wav_to_aac"
    MERGING_INTO_M4B = "merging_into_m4b"
    SAVING_IMAGE = "saving_image"
    UPDATING_M4B_METADATA = "updating_m4b_metadata"


class ProgressState(enum.Enum):
    STARTED = "started"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressUpdate:
    """A single progress event: which element, in which stage, in which state."""
    scope: str
    stage: Stage
    state: ProgressState


ProgressSink = Callable[[ProgressUpdate], None]

# Share of the whole conversion taken by each stage; iteration order matters.
STAGE_WEIGHTS: dict[Stage, float] = {
    Stage.INSTALLING: 0.05,
    Stage.CONVERT_TEXT_TO_WAV: 0.50,
    Stage.CONVERT_WAV_TO_AAC: 0.20,
    Stage.MERGING_INTO_M4B: 0.20,
    Stage.SAVING_IMAGE: 0.03,
    Stage.UPDATING_M4B_METADATA: 0.02,
}

STAGE_LABELS: dict[Stage, str] = {
    Stage.INSTALLING: "Installazione",
    Stage.CONVERT_TEXT_TO_WAV: "Sintesi vocale",
    Stage.CONVERT_WAV_TO_AAC: "Codifica AAC",
    Stage.MERGING_INTO_M4B: "Unione in M4B",
    Stage.SAVING_IMAGE: "Salvataggio immagine",
    Stage.UPDATING_M4B_METADATA: "Aggiornamento metadati",
}

STATE_LABELS: dict[ProgressState, str] = {
    ProgressState.STARTED: "avviato",
    ProgressState.DONE: "completato",
    ProgressState.FAILED: "fallito",
}

INSTALLING_SCOPE = "FFmpeg"


def _check_tables() -> None:
    for table_name, table, keys in (
        ("STAGE_WEIGHTS", STAGE_WEIGHTS, Stage),
        ("STAGE_LABELS", STAGE_LABELS, Stage),
        ("STATE_LABELS", STATE_LABELS, ProgressState),
    ):
        missing = [key.name for key in keys if key not in table]
        if missing:
            raise RuntimeError(f"{table_name} incompleta, mancano: {', '.join(missing)}")
    if list(STAGE_WEIGHTS) != list(Stage):
        raise RuntimeError("STAGE_WEIGHTS deve seguire l'ordine di Stage")
    if abs(sum(STAGE_WEIGHTS.values()) - 1.0) > 1e-9:
        raise RuntimeError("La somma dei pesi di STAGE_WEIGHTS deve essere 1.0")


_check_tables()


def elements_for_stage(stage: Stage, book: Book) -> Optional[Sequence[BookElement]]:
    """Return the book collection a per-element stage iterates, or None."""
    if stage in (Stage.CONVERT_TEXT_TO_WAV, Stage.CONVERT_WAV_TO_AAC):
        return book.chapters
    if stage is Stage.SAVING_IMAGE:
        return book.images
    return None


def stage_progress(scope: str, elements: Sequence[BookElement], is_done: bool) -> float:
    """Fraction of a per-element stage completed when ``scope`` is reported.

    Elements are processed one at a time in order, so everything before
    ``scope`` counts as finished; ``scope`` itself counts only once done.

    Raises:
        AssertionError: If no element is named ``scope``.
    """
    total = 0
    progress = 0
    found = False

    for element in elements:
        total += element.size
        if found:
            continue
        if element.file_name == scope:
            found = True
            if is_done:
                progress += element.size
        else:
            progress += element.size

    if not found:
        raise AssertionError(f"Elemento '{scope}' non presente nel libro")

    return progress / total if total else 0.0


def get_percentage(update: ProgressUpdate, book: Book) -> int:
    """Overall conversion percentage (0-100) at the time of ``update``."""
    base_progress = 0.0
    for stage, weight in STAGE_WEIGHTS.items():
        if stage is update.stage:
            break
        base_progress += weight

    weight = STAGE_WEIGHTS[update.stage]
    is_done = update.state is ProgressState.DONE
    elements = elements_for_stage(update.stage, book)

    if elements is not None:
        base_progress += weight * stage_progress(update.scope, elements, is_done)
    elif is_done:
        base_progress += weight

    # Half-up on a value rounded first to shed float noise from summed weights.
    return math.floor(round(base_progress * 100, 6) + 0.5)


def describe(update: ProgressUpdate) -> str:
    """Human-readable one-line description of an update."""
    return f"{STAGE_LABELS[update.stage]}: {update.scope} ({STATE_LABELS[update.state]})"


@contextmanager
def progress_scope(
    on_progress: Optional[ProgressSink], scope: str, stage: Stage
) -> Iterator[None]:
    """Report STARTED on entry and DONE on exit.

    FAILED replaces DONE when an exception escapes the block. Cancellation is
    not a failure and reports nothing.
    """
    def report(state: ProgressState) -> None:
        if on_progress:
            on_progress(ProgressUpdate(scope, stage, state))

    report(ProgressState.STARTED)
    try:
        yield
    except Exception:
        report(ProgressState.FAILED)
        raise
    report(ProgressState.DONE)


class ProgressReporter:
    """Progress sink that renders the overall percentage with tqdm."""

    def __init__(self, book: Book):
        self._book = book
        self._bar = tqdm(
            total=100,
            desc=book.title,
            unit="%",
            bar_format="{l_bar}{bar}| {n_fmt}% [{elapsed}<{remaining}] {postfix}",
        )

    def __call__(self, update: ProgressUpdate) -> None:
        percentage = get_percentage(update, self._book)
        if update.state is ProgressState.FAILED:
            logger.debug("Fase fallita: %s", describe(update))
        self._bar.set_postfix_str(describe(update), refresh=False)
        if percentage > self._bar.n:
            self._bar.update(percentage - self._bar.n)
        else:
            self._bar.refresh()

    def close(self) -> None:
        self._bar.close()
