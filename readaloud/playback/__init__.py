"""
Playback Module

Speaks a document sentence by sentence and keeps the highlighted reading
position and progress in step with the audio.
"""

from readaloud.playback.sentence_splitter import Sentence, SentenceSplitter, split_into_sentences
from readaloud.playback.position_map import (
    fraction_to_sentence_index,
    sentence_index_to_fraction,
    within_sentence_progress,
)
from readaloud.playback.highlight import render_markup, render_spans, strip_markers
from readaloud.playback.engine import EngineEvent, EventKind, SpeechEngine, Voice
from readaloud.playback.player import Document, PlaybackStatus, ReadAlongPlayer
from readaloud.playback.transport import SeekDrag, TransportController

__all__ = [
    "Sentence",
    "SentenceSplitter",
    "split_into_sentences",
    "fraction_to_sentence_index",
    "sentence_index_to_fraction",
    "within_sentence_progress",
    "render_markup",
    "render_spans",
    "strip_markers",
    "EngineEvent",
    "EventKind",
    "SpeechEngine",
    "Voice",
    "Document",
    "PlaybackStatus",
    "ReadAlongPlayer",
    "SeekDrag",
    "TransportController",
]
