#!/usr/bin/env python3
"""
Read-Aloud Player - Main CLI

Reads documents aloud sentence by sentence with system voices, keeping a
highlighted reading position and a progress bar in step with the speech.

Features:
- Text, HTML, PDF, DOCX, EPUB and MOBI input
- Sentence-level playback with live progress
- Start from any sentence, adjustable voice, speed and volume
- Sentence and highlight inspection for debugging segmentation
"""

import sys
import time
from pathlib import Path
from typing import Optional

import click
from rich.table import Table
from rich.text import Text

from readaloud import __version__
from readaloud.extract_text import (
    ExtractionError,
    UnsupportedFormatError,
    document_stats,
    load_document,
)
from readaloud.playback.engine import (
    EngineUnavailableError,
    choose_default_voice,
    create_engine,
)
from readaloud.playback.highlight import render_spans, to_rich_text
from readaloud.playback.player import PlaybackStatus, PlayerSnapshot, ReadAlongPlayer
from readaloud.playback.position_map import estimate_times, format_time
from readaloud.playback.sentence_splitter import split_into_sentences
from readaloud.playback.transport import TransportController
from readaloud.utils import logger
from readaloud.utils.config import config


def _load(input_file: str, title: Optional[str] = None):
    try:
        return load_document(Path(input_file), title=title)
    except (UnsupportedFormatError, ExtractionError, FileNotFoundError) as e:
        logger.error(str(e))
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    Read-Aloud Player

    Speak documents sentence by sentence with synchronized highlighting.
    """
    pass


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("-v", "--voice", default=None, help="Voice id (see 'voices')")
@click.option(
    "-s", "--speed",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help=f"Speech speed ({config.speed_min}-{config.speed_max}, default: {config.speed})",
)
@click.option("--volume", type=click.FloatRange(0, 1), default=None, help="Volume 0-1")
@click.option("--start", type=int, default=1, help="Sentence number to start from")
@click.option("-t", "--title", default=None, help="Document title (default: file name)")
def read(
    input_file: str,
    voice: Optional[str],
    speed: Optional[float],
    volume: Optional[float],
    start: int,
    title: Optional[str],
):
    """
    Read a document aloud.

    Press Ctrl+C to stop.
    """
    document = _load(input_file, title)
    logger.header(f"Reading: {document.title}")

    try:
        engine = create_engine()
    except (EngineUnavailableError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)

    if voice is None and config.voice is None:
        default_voice = choose_default_voice(engine.list_voices())
        voice = default_voice.id if default_voice else None

    player = ReadAlongPlayer(engine, voice_id=voice)
    transport = TransportController(player)
    if speed is not None:
        transport.set_speed(speed)
    if volume is not None:
        transport.set_volume(volume)

    player.load(document)
    if not player.sentences:
        logger.warning("Nothing to read.")
        player.close()
        engine.close()
        return

    logger.step(f"Starting at sentence {start} of {len(player.sentences)} (Ctrl+C to stop)")

    with logger.create_progress() as progress:
        task = progress.add_task("Reading", total=100, clock="0:00 / 0:00")
        shown_index = None

        def render(snapshot: PlayerSnapshot) -> None:
            nonlocal shown_index
            clock = f"{format_time(snapshot.elapsed)} / {format_time(snapshot.total)}"
            progress.update(task, completed=snapshot.progress * 100, clock=clock)

            index = snapshot.highlight_index
            if snapshot.scroll and index >= 0 and index != shown_index:
                shown_index = index
                sentence = player.sentences[index]
                line = Text(f"[{index + 1}/{snapshot.sentence_count}] ", style="step")
                line.append(sentence.text, style="highlight")
                progress.console.print(line)

        player.subscribe(render)
        transport.jump_to(start - 1)

        try:
            while player.status in (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED):
                engine.pump()
                time.sleep(config.pump_interval)
        except KeyboardInterrupt:
            player.stop()
        finally:
            player.close()
            engine.close()


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
def sentences(input_file: str):
    """List the sentences of a document with their offsets."""
    document = _load(input_file)
    found = split_into_sentences(document.text)

    table = Table(title=f"{document.title}: {len(found)} sentences")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Para", justify="right")
    table.add_column("Span", justify="right")
    table.add_column("Text")

    for sentence in found:
        text = sentence.text if len(sentence.text) <= 80 else sentence.text[:77] + "..."
        table.add_row(
            str(sentence.index + 1),
            str(sentence.paragraph + 1),
            f"{sentence.start_offset}-{sentence.end_offset}",
            text,
        )

    logger.console.print(table)


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("-i", "--index", "number", type=int, default=1, help="Sentence number to highlight")
def highlight(input_file: str, number: int):
    """Print a document with one sentence highlighted."""
    document = _load(input_file)
    found = split_into_sentences(document.text)
    if not 1 <= number <= len(found):
        logger.warning(f"Sentence {number} out of range (1-{len(found)}); no highlight.")

    logger.console.print(to_rich_text(render_spans(document.text, found, number - 1)))


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("-s", "--speed", type=float, default=None, help="Speech speed for the estimate")
def stats(input_file: str, speed: Optional[float]):
    """Show document size and estimated reading time."""
    document = _load(input_file)
    characters, words = document_stats(document.text)
    found = split_into_sentences(document.text)
    _, total = estimate_times(
        found,
        0,
        speed=speed or config.speed,
        words_per_minute=config.words_per_minute,
    )

    logger.info(f"{characters:,} characters, {words:,} words")
    logger.info(f"{len(found):,} sentences")
    logger.info(f"Estimated reading time: {format_time(total)}")


@cli.command()
def voices():
    """List available system voices."""
    try:
        engine = create_engine()
    except (EngineUnavailableError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)

    try:
        available = engine.list_voices()
    finally:
        engine.close()

    preselected = choose_default_voice(available)

    table = Table(title=f"{len(available)} voices")
    table.add_column("ID", style="cyan")
    table.add_column("Voice")
    for v in available:
        marker = " *" if preselected and v.id == preselected.id else ""
        table.add_row(v.id, v.label + marker)

    logger.console.print(table)


if __name__ == "__main__":
    cli()
