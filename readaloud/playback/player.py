"""
Read-Along Player Module

The playback state machine. Speaks a document one sentence at a time and
keeps the reading position, progress and highlight in step with the audio.

States:
    IDLE     no document loaded
    STOPPED  document loaded, nothing queued
    PLAYING  an utterance is being spoken (or about to be)
    PAUSED   playback suspended; a suspended utterance may be outstanding

Each sentence is a separate utterance, chained by completion events. At
most one utterance is outstanding at a time. Every utterance gets a fresh
id from a monotonically increasing generation counter, and engine events
for any other id are stale and ignored, so a late callback from a
cancelled utterance can never advance the reading position.

Engine events are queued and drained in order. An event that arrives while
a transition is running (for example fired synchronously from inside
engine.speak) is handled after that transition completes.
"""

import math
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Deque, List, Optional, Tuple

from readaloud.playback.engine import EngineEvent, EventKind, SpeechEngine
from readaloud.playback.highlight import NO_HIGHLIGHT, render_markup
from readaloud.playback.position_map import (
    clamp_index,
    estimate_times,
    overall_progress,
    sentence_index_to_fraction,
    within_sentence_progress,
)
from readaloud.playback.sentence_splitter import Sentence, SentenceSplitter
from readaloud.utils.config import config
from readaloud.utils import logger


class PlaybackStatus(Enum):
    IDLE = "idle"
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class Document:
    """A loaded document. Replaced wholesale on the next load."""

    text: str
    title: str = "Text Content"


@dataclass
class PlaybackState:
    """Playback position and settings. Only the player mutates it."""

    status: PlaybackStatus = PlaybackStatus.IDLE
    current_sentence_index: int = 0
    speed: float = 1.0
    volume: float = 1.0
    voice_id: Optional[str] = None


@dataclass(frozen=True)
class Utterance:
    """The one outstanding request to speak a sentence."""

    id: int
    sentence_index: int


@dataclass(frozen=True)
class StatusMessage:
    """User-facing status line: info, warning, error or success."""

    text: str
    kind: str = "info"


@dataclass(frozen=True)
class PlayerSnapshot:
    """Everything a presentation layer needs to re-render."""

    status: PlaybackStatus
    title: str
    current_sentence_index: int
    sentence_count: int
    highlight_index: int
    progress: float
    elapsed: float
    total: float
    highlighted_markup: str
    message: Optional[StatusMessage]
    scroll: bool = True  # False while the user drags the seek bar


Listener = Callable[[PlayerSnapshot], None]


class ReadAlongPlayer:
    """
    Sentence-by-sentence playback state machine.

    Drives a SpeechEngine and exposes a read/subscribe surface for
    presentation code. Speech engine errors never escape a transition: the
    player falls back to STOPPED with an error message and stays usable.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        voice_id: Optional[str] = None,
        speed: Optional[float] = None,
        volume: Optional[float] = None,
        report_status: bool = True,
    ):
        """
        Initialize the player.

        Args:
            engine: Speech engine to drive
            voice_id: Voice to use (None lets the engine decide)
            speed: Speech speed multiplier (default from config)
            volume: Volume 0..1 (default from config)
            report_status: Print status messages through the logger
        """
        self.engine = engine
        self.report_status = report_status
        self._splitter = SentenceSplitter()

        self._state = PlaybackState(
            voice_id=voice_id if voice_id is not None else config.voice,
            speed=_check_speed(speed if speed is not None else config.speed),
            volume=_clamp_volume(volume if volume is not None else config.volume),
        )
        self._document: Optional[Document] = None
        self._sentences: Tuple[Sentence, ...] = ()
        self._utterance: Optional[Utterance] = None
        self._generation = 0
        self._progress = 0.0
        self._highlight = NO_HIGHLIGHT
        self._message: Optional[StatusMessage] = None

        self._events: Deque[EngineEvent] = deque()
        self._in_transition = False
        self._listeners: List[Listener] = []

        self.engine.set_listener(self.handle_event)

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        """A copy of the current playback state."""
        return replace(self._state)

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    @property
    def current_sentence_index(self) -> int:
        return self._state.current_sentence_index

    @property
    def document(self) -> Optional[Document]:
        return self._document

    @property
    def sentences(self) -> Tuple[Sentence, ...]:
        return self._sentences

    @property
    def current_sentence(self) -> Optional[Sentence]:
        index = self._state.current_sentence_index
        if 0 <= index < len(self._sentences):
            return self._sentences[index]
        return None

    @property
    def utterance(self) -> Optional[Utterance]:
        return self._utterance

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def highlight_index(self) -> int:
        return self._highlight

    @property
    def highlighted_markup(self) -> str:
        if self._document is None:
            return ""
        return render_markup(self._document.text, self._sentences, self._highlight)

    @property
    def message(self) -> Optional[StatusMessage]:
        return self._message

    def snapshot(self, scroll: bool = True) -> PlayerSnapshot:
        elapsed, total = estimate_times(
            self._sentences,
            self._state.current_sentence_index,
            speed=self._state.speed,
            words_per_minute=config.words_per_minute,
        )
        return PlayerSnapshot(
            status=self._state.status,
            title=self._document.title if self._document else "",
            current_sentence_index=self._state.current_sentence_index,
            sentence_count=len(self._sentences),
            highlight_index=self._highlight,
            progress=self._progress,
            elapsed=elapsed,
            total=total,
            highlighted_markup=self.highlighted_markup,
            message=self._message,
            scroll=scroll,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call listener with a snapshot after every state change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def load(self, document: Document) -> None:
        """Load a document; any state goes to STOPPED at sentence 0."""
        with self._transition():
            self._cancel_utterance(force=True)
            self._document = document
            self._sentences = tuple(self._splitter.split(document.text))
            self._state.status = PlaybackStatus.STOPPED
            self._state.current_sentence_index = 0
            self._progress = 0.0
            self._highlight = NO_HIGHLIGHT

            if self._sentences:
                self._report(f"Loaded: {document.title} ({len(self._sentences)} sentences)")
            else:
                self._report(f"Loaded: {document.title} (no sentences found)", "warning")

    def load_text(self, text: str, title: str = "Text Content") -> None:
        self.load(Document(text=text, title=title))

    def clear(self) -> None:
        """Drop the document and go back to IDLE."""
        with self._transition():
            self._cancel_utterance(force=True)
            self._document = None
            self._sentences = ()
            self._state.status = PlaybackStatus.IDLE
            self._state.current_sentence_index = 0
            self._progress = 0.0
            self._highlight = NO_HIGHLIGHT
            self._report("Ready to load documents")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self) -> bool:
        """
        Start or resume playback.

        Returns:
            True if the player is now PLAYING
        """
        with self._transition():
            if not self._sentences:
                self._report("No text loaded to play or no sentences found.", "warning")
                return False

            status = self._state.status
            if status == PlaybackStatus.PLAYING:
                return True

            if status == PlaybackStatus.PAUSED and self._utterance is not None:
                try:
                    self.engine.resume()
                except Exception as e:
                    self._engine_failed("resume", e)
                    return False
                self._state.status = PlaybackStatus.PLAYING
                self._report("Resuming...")
                return True

            if self._state.current_sentence_index >= len(self._sentences):
                self._state.current_sentence_index = 0

            self._state.status = PlaybackStatus.PLAYING
            self._report("Playing...")
            self._speak_current()
            return self._state.status == PlaybackStatus.PLAYING

    def pause(self) -> bool:
        """Suspend playback, keeping the current utterance."""
        with self._transition():
            if self._state.status != PlaybackStatus.PLAYING:
                return False
            self._state.status = PlaybackStatus.PAUSED
            if self._utterance is not None:
                try:
                    self.engine.pause()
                except Exception as e:
                    self._engine_failed("pause", e)
                    return False
            self._report("Paused.")
            return True

    def toggle(self) -> bool:
        """Play/pause button: pause when playing, otherwise play."""
        if self._state.status == PlaybackStatus.PLAYING:
            return self.pause()
        return self.play()

    def stop(self) -> None:
        """Cancel speech and rewind to the first sentence."""
        with self._transition():
            self._cancel_utterance(force=True)
            if self._state.status != PlaybackStatus.IDLE:
                self._state.status = PlaybackStatus.STOPPED
            self._state.current_sentence_index = 0
            self._progress = 0.0
            self._highlight = NO_HIGHLIGHT
            self._report("Stopped.")

    def jump_to(self, index: int) -> bool:
        """
        Play from a sentence. Out-of-range indexes are clamped.

        Returns:
            False if there is nothing to play
        """
        with self._transition():
            if not self._sentences:
                self._report("No text loaded to play or no sentences found.", "warning")
                return False

            index = clamp_index(index, len(self._sentences))
            self._state.current_sentence_index = index
            self._state.status = PlaybackStatus.PLAYING
            self._report(f"Jumping to sentence {index + 1}.")
            self._speak_current()
            return self._state.status == PlaybackStatus.PLAYING

    def preview(self, index: int) -> bool:
        """
        Move the reading position without speaking (seek-bar drag).

        Cancels the outstanding utterance; a PLAYING player becomes PAUSED.
        Listeners get snapshots with scroll=False.
        """
        with self._transition(scroll=False):
            if not self._sentences:
                return False

            self._cancel_utterance()
            if self._state.status == PlaybackStatus.PLAYING:
                self._state.status = PlaybackStatus.PAUSED

            index = clamp_index(index, len(self._sentences))
            self._state.current_sentence_index = index
            self._progress = sentence_index_to_fraction(index, len(self._sentences))
            self._highlight = index
            return True

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def change_voice(self, voice_id: Optional[str]) -> None:
        with self._transition():
            self._state.voice_id = voice_id
            self._restart_for_settings()

    def change_speed(self, speed: float) -> None:
        """Change the speech speed; a playing sentence restarts at the new rate."""
        speed = _check_speed(speed)
        with self._transition():
            self._state.speed = speed
            self._restart_for_settings()

    def change_volume(self, volume: float) -> None:
        """Change the volume; applied to the live utterance without restarting."""
        with self._transition():
            self._state.volume = _clamp_volume(volume)
            if self._utterance is not None:
                try:
                    self.engine.set_volume(self._state.volume)
                except Exception as e:
                    logger.warning(f"Speech engine failed to change volume: {e}")

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def handle_event(self, event: EngineEvent) -> None:
        """Queue an engine event and process the queue unless already running."""
        self._events.append(event)
        if self._in_transition:
            return

        self._in_transition = True
        try:
            changed = self._drain()
        finally:
            self._in_transition = False

        if changed:
            self._notify()

    def report(self, text: str, kind: str = "info") -> None:
        """Set the status message and notify listeners."""
        with self._transition():
            self._report(text, kind)

    def close(self) -> None:
        """Stop speaking and detach from the engine."""
        self._cancel_utterance()
        self.engine.set_listener(None)
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _transition(self, scroll: bool = True):
        if self._in_transition:
            yield
            return

        self._in_transition = True
        try:
            yield
            self._drain()
        finally:
            self._in_transition = False
        self._notify(scroll)

    def _drain(self) -> bool:
        changed = False
        while self._events:
            changed = self._apply_event(self._events.popleft()) or changed
        return changed

    def _apply_event(self, event: EngineEvent) -> bool:
        utterance = self._utterance
        if utterance is None or event.utterance_id != utterance.id:
            return False

        count = len(self._sentences)

        if event.kind == EventKind.BOUNDARY:
            sentence = self._sentences[utterance.sentence_index]
            within = within_sentence_progress(
                event.char_index, event.char_length, sentence.length
            )
            self._progress = overall_progress(utterance.sentence_index, within, count)
            return True

        self._utterance = None

        if event.kind == EventKind.ERROR:
            # Keep the position so the user can retry the same sentence
            self._state.status = PlaybackStatus.STOPPED
            self._report(f"Speech error: {event.error or 'unknown error'}", "error")
            return True

        next_index = utterance.sentence_index + 1
        if next_index >= count:
            self._finish()
            return True

        self._state.current_sentence_index = next_index
        self._progress = sentence_index_to_fraction(next_index, count)
        self._highlight = next_index
        if self._state.status == PlaybackStatus.PLAYING:
            self._speak_current()
        return True

    def _speak_current(self) -> None:
        self._cancel_utterance()

        index = self._state.current_sentence_index
        sentence = self._sentences[index]
        self._generation += 1
        self._utterance = Utterance(id=self._generation, sentence_index=index)
        self._progress = sentence_index_to_fraction(index, len(self._sentences))
        self._highlight = index

        try:
            self.engine.speak(
                self._utterance.id,
                sentence.text,
                self._state.voice_id,
                self._state.speed,
                self._state.volume,
            )
        except Exception as e:
            self._engine_failed(f"speak sentence {index + 1}", e)

    def _cancel_utterance(self, force: bool = False) -> None:
        # Clearing the utterance makes any later event for its id stale
        outstanding = self._utterance is not None
        self._utterance = None
        if outstanding or force:
            try:
                self.engine.cancel()
            except Exception as e:
                # Events for the dropped utterance are stale either way
                logger.warning(f"Speech engine failed to cancel: {e}")

    def _engine_failed(self, action: str, error: Exception) -> None:
        logger.error(f"Speech engine failed to {action}: {error}")
        self._cancel_utterance()
        self._state.status = PlaybackStatus.STOPPED
        self._report(f"Speech error: {error}", "error")

    def _restart_for_settings(self) -> None:
        if self._state.status == PlaybackStatus.PLAYING:
            self._speak_current()
        elif self._state.status == PlaybackStatus.PAUSED and self._utterance is not None:
            # The suspended utterance uses the old settings; play() re-issues
            self._cancel_utterance()

    def _finish(self) -> None:
        self._state.status = PlaybackStatus.STOPPED
        self._state.current_sentence_index = 0
        self._progress = 0.0
        self._highlight = NO_HIGHLIGHT
        self._report("Finished reading.", "success")

    def _report(self, text: str, kind: str = "info") -> None:
        self._message = StatusMessage(text, kind)
        if self.report_status:
            logger.status(text, kind)

    def _notify(self, scroll: bool = True) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot(scroll=scroll)
        for listener in list(self._listeners):
            listener(snapshot)


def _check_speed(speed: float) -> float:
    if math.isnan(speed) or speed <= 0:
        raise ValueError(f"Speed must be a positive number, got {speed}")
    return float(speed)


def _clamp_volume(volume: float) -> float:
    if math.isnan(volume):
        return 1.0
    return min(max(float(volume), 0.0), 1.0)
