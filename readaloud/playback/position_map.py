"""
Position Map Module

Maps between playback positions and text positions:
- a normalized playback fraction (0..1) on the progress/seek surface
- a sentence index in the sentence list
- a character offset inside the sentence being spoken

Also provides the rough elapsed/total time estimate shown next to the
progress bar, since speech engines do not report durations up front.
"""

import math
from typing import Sequence, Tuple

from readaloud.playback.sentence_splitter import Sentence


def clamp_fraction(fraction: float) -> float:
    """Clamp a fraction to [0, 1]; NaN becomes 0."""
    if math.isnan(fraction):
        return 0.0
    return min(max(fraction, 0.0), 1.0)


def clamp_index(index: int, sentence_count: int) -> int:
    """Clamp a sentence index to [0, sentence_count - 1] (0 when empty)."""
    if sentence_count <= 0:
        return 0
    return min(max(index, 0), sentence_count - 1)


def fraction_to_sentence_index(fraction: float, sentence_count: int) -> int:
    """
    Convert a playback fraction to a sentence index.

    floor(fraction * count), clamped so that 1.0 maps to the last sentence.

    Args:
        fraction: Position on the seek surface (values outside 0..1 are clamped)
        sentence_count: Number of sentences in the document

    Returns:
        Sentence index in [0, sentence_count - 1], or 0 for an empty document
    """
    if sentence_count <= 0:
        return 0
    fraction = clamp_fraction(fraction)
    index = math.floor(fraction * sentence_count)
    # Snap to the same thresholds sentence_index_to_fraction produces, so
    # index / count always maps back to index despite rounding.
    if index < sentence_count and (index + 1) / sentence_count <= fraction:
        index += 1
    elif index > 0 and index / sentence_count > fraction:
        index -= 1
    return clamp_index(index, sentence_count)


def sentence_index_to_fraction(index: int, sentence_count: int) -> float:
    """Coarse progress at the start of a sentence: index / count."""
    if sentence_count <= 0:
        return 0.0
    return clamp_fraction(index / sentence_count)


def within_sentence_progress(
    char_index: int,
    char_length: int,
    sentence_text_length: int,
) -> float:
    """
    Progress inside the sentence being spoken, from a word boundary event.

    Args:
        char_index: Offset of the word the engine is speaking
        char_length: Length of that word
        sentence_text_length: Length of the sentence text

    Returns:
        (char_index + char_length) / sentence_text_length, clamped to [0, 1]
    """
    if sentence_text_length <= 0:
        return 0.0
    return clamp_fraction((char_index + char_length) / sentence_text_length)


def overall_progress(index: int, within: float, sentence_count: int) -> float:
    """Fine-grained document progress: (index + within) / count."""
    if sentence_count <= 0:
        return 0.0
    return clamp_fraction((index + clamp_fraction(within)) / sentence_count)


def pointer_to_fraction(x: float, width: float) -> float:
    """Convert a pointer x inside a seek surface of the given width to a fraction."""
    if width <= 0:
        return 0.0
    return clamp_fraction(x / width)


def _word_count(text: str) -> int:
    return len(text.split())


def estimate_times(
    sentences: Sequence[Sentence],
    index: int,
    speed: float = 1.0,
    words_per_minute: int = 150,
) -> Tuple[float, float]:
    """
    Estimate elapsed and total reading time.

    Args:
        sentences: Sentence list of the document
        index: Current sentence index (sentences before it count as read)
        speed: Speech speed multiplier
        words_per_minute: Average reading speed at speed 1.0

    Returns:
        Tuple of (elapsed seconds, total seconds)
    """
    if speed <= 0 or words_per_minute <= 0:
        return 0.0, 0.0

    seconds_per_word = 60.0 / words_per_minute / speed
    counts = [_word_count(s.text) for s in sentences]
    elapsed_words = sum(counts[:max(index, 0)])
    return elapsed_words * seconds_per_word, sum(counts) * seconds_per_word


def format_time(seconds: float) -> str:
    """Format seconds as M:SS; negative or NaN gives 0:00."""
    if math.isnan(seconds) or seconds < 0:
        return "0:00"
    minutes = int(seconds // 60)
    return f"{minutes}:{int(seconds % 60):02d}"
