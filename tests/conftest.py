"""Shared pytest fixtures: a scripted speech engine and players wired to it."""

from typing import List, Optional

import pytest

from readaloud.playback.engine import EngineEvent, EventKind, SpeechEngine, Voice
from readaloud.playback.player import ReadAlongPlayer
from readaloud.playback.transport import TransportController


class FakeEngine(SpeechEngine):
    """Records engine calls; tests fire completion/error/boundary events by hand."""

    def __init__(self, auto_complete: bool = False):
        super().__init__()
        self.auto_complete = auto_complete
        self.spoken: List[dict] = []
        self.calls: List[str] = []
        self.live = set()  # utterance ids spoken and not yet cancelled or finished
        self.volume: Optional[float] = None
        self.fail_next_speak = False
        self.failing = set()  # names of methods that raise

    def speak(self, utterance_id, text, voice_id, speed, volume):
        if self.fail_next_speak:
            self.fail_next_speak = False
            raise RuntimeError("audio device unavailable")
        self.calls.append("speak")
        self.spoken.append({
            "id": utterance_id,
            "text": text,
            "voice_id": voice_id,
            "speed": speed,
            "volume": volume,
        })
        self.live.add(utterance_id)
        if self.auto_complete:
            self.complete(utterance_id)

    def _check(self, name):
        if name in self.failing:
            raise RuntimeError(f"{name} failed")

    def pause(self):
        self._check("pause")
        self.calls.append("pause")

    def resume(self):
        self._check("resume")
        self.calls.append("resume")

    def cancel(self):
        self._check("cancel")
        self.calls.append("cancel")
        self.live.clear()

    def set_volume(self, volume):
        self._check("set_volume")
        self.calls.append("set_volume")
        self.volume = volume

    def list_voices(self):
        return [
            Voice("fr", "Amelie", ["fr_FR"]),
            Voice("en", "Daniel", ["en_GB"]),
        ]

    # Test helpers

    @property
    def last_id(self) -> int:
        return self.spoken[-1]["id"]

    @property
    def last_text(self) -> str:
        return self.spoken[-1]["text"]

    def complete(self, utterance_id: Optional[int] = None) -> None:
        utterance_id = self.last_id if utterance_id is None else utterance_id
        self.live.discard(utterance_id)
        self._emit(EngineEvent(EventKind.END, utterance_id))

    def fail(self, utterance_id: Optional[int] = None, error: str = "synthesis-failed") -> None:
        utterance_id = self.last_id if utterance_id is None else utterance_id
        self.live.discard(utterance_id)
        self._emit(EngineEvent(EventKind.ERROR, utterance_id, error=error))

    def boundary(self, char_index: int, char_length: int, utterance_id: Optional[int] = None) -> None:
        utterance_id = self.last_id if utterance_id is None else utterance_id
        self._emit(EngineEvent(
            EventKind.BOUNDARY, utterance_id, char_index=char_index, char_length=char_length,
        ))


THREE_SENTENCES = "Hello world. How are you? Fine!"


def numbered_text(count: int) -> str:
    return " ".join(f"Sentence number {i}." for i in range(count))


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def player(engine) -> ReadAlongPlayer:
    return ReadAlongPlayer(engine, voice_id=None, speed=1.0, volume=1.0, report_status=False)


@pytest.fixture
def transport(player) -> TransportController:
    return TransportController(player, speed_min=0.5, speed_max=2.0)
