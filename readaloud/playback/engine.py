"""
Speech Engine Module

The seam between the playback state machine and a speech synthesizer.

Engines speak one sentence at a time and report back through tagged events:
every event carries the id of the utterance it belongs to, so the player
can drop events from utterances it has already cancelled.

Engine calls are fire-and-forget: speak/pause/resume/cancel return at once
and results arrive later through the listener.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from readaloud.utils.config import config
from readaloud.utils import logger


class EngineUnavailableError(RuntimeError):
    """Raised when a speech engine library cannot be loaded."""
    pass


class EventKind(Enum):
    END = "end"  # utterance finished naturally
    ERROR = "error"  # utterance failed mid-speech
    BOUNDARY = "boundary"  # engine reached a word


@dataclass(frozen=True)
class EngineEvent:
    """A speech engine callback, tagged with its utterance id."""

    kind: EventKind
    utterance_id: int
    char_index: int = 0
    char_length: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class Voice:
    """A voice offered by the speech engine."""

    id: str
    name: str
    languages: List[str] = field(default_factory=list)
    default: bool = False

    @property
    def label(self) -> str:
        languages = ", ".join(self.languages)
        label = f"{self.name} ({languages})" if languages else self.name
        return f"{label} - Default" if self.default else label


def choose_default_voice(voices: List[Voice]) -> Optional[Voice]:
    """
    Pick the voice to preselect.

    The engine's default voice wins, then the first English voice, then
    the first voice at all.
    """
    for voice in voices:
        if voice.default:
            return voice
    for voice in voices:
        if any(lang.lower().startswith("en") for lang in voice.languages):
            return voice
    return voices[0] if voices else None


EventListener = Callable[[EngineEvent], None]


class SpeechEngine(ABC):
    """Base class for speech engines driven by the playback state machine."""

    def __init__(self) -> None:
        self._listener: Optional[EventListener] = None

    def set_listener(self, listener: Optional[EventListener]) -> None:
        """Register the callback that receives engine events."""
        self._listener = listener

    def _emit(self, event: EngineEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    @abstractmethod
    def speak(
        self,
        utterance_id: int,
        text: str,
        voice_id: Optional[str],
        speed: float,
        volume: float,
    ) -> None:
        """Start speaking one sentence."""

    @abstractmethod
    def pause(self) -> None:
        """Suspend the current utterance without discarding it."""

    @abstractmethod
    def resume(self) -> None:
        """Continue a suspended utterance."""

    @abstractmethod
    def cancel(self) -> None:
        """Drop the current utterance. Safe to call when idle."""

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Change the volume of the live utterance."""

    @abstractmethod
    def list_voices(self) -> List[Voice]:
        """Return the voices this engine offers."""

    def pump(self) -> None:
        """Give the engine a chance to deliver pending callbacks."""

    def close(self) -> None:
        """Release engine resources."""


class Pyttsx3Engine(SpeechEngine):
    """
    Speech engine backed by pyttsx3 (system voices).

    On Windows: Uses SAPI5 voices
    On macOS: Uses NSSpeechSynthesizer
    On Linux: Uses espeak

    pyttsx3 runs in external-loop mode: pump() must be called regularly
    from the caller's loop for callbacks to fire. pyttsx3 cannot suspend
    speech, so pause() stops the engine and resume() speaks the paused
    sentence again from its start under the same utterance id.
    """

    def __init__(self, driver_name: Optional[str] = None, base_rate: Optional[int] = None):
        """
        Initialize the pyttsx3 engine.

        Args:
            driver_name: pyttsx3 driver ("sapi5", "nsss", "espeak"), None for the platform default
            base_rate: Words per minute at speed 1.0
        """
        super().__init__()
        self.base_rate = base_rate or config.base_rate

        try:
            import pyttsx3
        except ImportError as e:
            logger.error("pyttsx3 not installed")
            raise EngineUnavailableError(
                "pyttsx3 not found. Install with: pip install pyttsx3"
            ) from e

        try:
            self._engine = pyttsx3.init(driver_name)
        except Exception as e:
            raise EngineUnavailableError(f"Failed to initialize pyttsx3: {e}") from e

        self._engine.connect("started-word", self._on_word)
        self._engine.connect("finished-utterance", self._on_finished)
        self._engine.connect("error", self._on_error)

        self._loop_started = False
        # (utterance id, text) being spoken, and the one held by pause()
        self._current = None
        self._paused = None

    def _ensure_loop(self) -> None:
        if not self._loop_started:
            self._engine.startLoop(False)
            self._loop_started = True

    def speak(
        self,
        utterance_id: int,
        text: str,
        voice_id: Optional[str],
        speed: float,
        volume: float,
    ) -> None:
        if voice_id:
            self._engine.setProperty("voice", voice_id)
        self._engine.setProperty("rate", int(self.base_rate * speed))
        self._engine.setProperty("volume", volume)

        self._current = (utterance_id, text)
        self._paused = None
        self._engine.say(text, str(utterance_id))
        self._ensure_loop()

    def pause(self) -> None:
        if self._current is None:
            return
        self._paused = self._current
        self._current = None
        self._engine.stop()

    def resume(self) -> None:
        if self._paused is None:
            return
        utterance_id, text = self._paused
        self._paused = None
        self._current = (utterance_id, text)
        self._engine.say(text, str(utterance_id))
        self._ensure_loop()

    def cancel(self) -> None:
        self._current = None
        self._paused = None
        self._engine.stop()

    def set_volume(self, volume: float) -> None:
        self._engine.setProperty("volume", volume)

    def list_voices(self) -> List[Voice]:
        current = self._engine.getProperty("voice")
        voices = []
        for v in self._engine.getProperty("voices"):
            languages = [
                lang.decode("utf-8", "replace") if isinstance(lang, bytes) else str(lang)
                for lang in (getattr(v, "languages", None) or [])
            ]
            voices.append(Voice(
                id=v.id,
                name=v.name or v.id,
                languages=languages,
                default=v.id == current,
            ))
        return voices

    def pump(self) -> None:
        if self._loop_started:
            self._engine.iterate()

    def close(self) -> None:
        self.cancel()
        if self._loop_started:
            self._engine.endLoop()
            self._loop_started = False

    # pyttsx3 callbacks; names are the utterance ids passed to say()

    @staticmethod
    def _utterance_id(name) -> int:
        try:
            return int(name)
        except (TypeError, ValueError):
            return -1

    def _on_word(self, name, location, length) -> None:
        self._emit(EngineEvent(
            EventKind.BOUNDARY, self._utterance_id(name), char_index=location, char_length=length,
        ))

    def _on_finished(self, name, completed) -> None:
        utterance_id = self._utterance_id(name)
        if self._current is not None and self._current[0] == utterance_id:
            self._current = None
        # Stopped utterances (cancel or pause) finish with completed=False
        if completed:
            self._emit(EngineEvent(EventKind.END, utterance_id))

    def _on_error(self, name, exception) -> None:
        self._emit(EngineEvent(EventKind.ERROR, self._utterance_id(name), error=str(exception)))


def create_engine(name: Optional[str] = None) -> SpeechEngine:
    """
    Create the configured speech engine.

    Args:
        name: Engine name, defaults to config (READALOUD_ENGINE overrides)

    Returns:
        A ready SpeechEngine
    """
    name = (name or config.tts_engine).lower()
    if name == "pyttsx3":
        return Pyttsx3Engine()
    raise ValueError(f"Unknown speech engine: '{name}'. Supported: pyttsx3")
