"""Tests for the read-along playback state machine."""

import itertools
import math

import pytest

from readaloud.playback.highlight import (
    HIGHLIGHT_END,
    HIGHLIGHT_START,
    NO_HIGHLIGHT,
    strip_markers,
)
from readaloud.playback.player import Document, PlaybackStatus, ReadAlongPlayer

from conftest import THREE_SENTENCES, FakeEngine, numbered_text


class TestPlayback:
    def test_completion_advances_to_next_sentence(self, player, engine):
        player.load_text(THREE_SENTENCES)
        assert [s.text for s in player.sentences] == ["Hello world.", "How are you?", "Fine!"]

        assert player.play()
        assert engine.last_text == "Hello world."
        assert player.status == PlaybackStatus.PLAYING

        engine.complete()
        assert player.current_sentence_index == 1
        assert engine.last_text == "How are you?"
        assert player.utterance.sentence_index == 1

    def test_stop_rewinds_and_cancels(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.complete()

        player.stop()
        assert player.status == PlaybackStatus.STOPPED
        assert player.current_sentence_index == 0
        assert player.utterance is None
        assert player.highlight_index == NO_HIGHLIGHT
        assert engine.live == set()

    def test_jump_past_end_clamps(self, player, engine):
        player.load_text(THREE_SENTENCES)
        assert player.jump_to(5)
        assert player.current_sentence_index == 2
        assert engine.last_text == "Fine!"

    def test_jump_before_start_clamps(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.jump_to(-4)
        assert player.current_sentence_index == 0

    def test_finishing_resets_to_start(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        for _ in range(3):
            engine.complete()

        assert player.status == PlaybackStatus.STOPPED
        assert player.current_sentence_index == 0
        assert player.highlight_index == NO_HIGHLIGHT
        assert player.progress == 0.0
        assert player.message.text == "Finished reading."
        assert player.message.kind == "success"
        assert len(engine.spoken) == 3

    def test_play_after_finish_starts_over(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        for _ in range(3):
            engine.complete()

        player.play()
        assert engine.last_text == "Hello world."

    def test_toggle(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.toggle()
        assert player.status == PlaybackStatus.PLAYING
        player.toggle()
        assert player.status == PlaybackStatus.PAUSED

    def test_single_sentence_document(self, player, engine):
        player.load_text("Only one.")
        player.play()
        engine.complete()
        assert player.status == PlaybackStatus.STOPPED
        assert player.current_sentence_index == 0


class TestStaleEvents:
    def test_completion_of_cancelled_utterance_is_ignored(self, player, engine):
        player.load_text(numbered_text(5))
        player.play()
        first = engine.last_id

        player.jump_to(3)
        spoken = len(engine.spoken)
        engine.complete(first)

        assert player.current_sentence_index == 3
        assert len(engine.spoken) == spoken
        assert player.status == PlaybackStatus.PLAYING

    def test_error_of_cancelled_utterance_is_ignored(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        first = engine.last_id
        player.stop()

        engine.fail(first)
        assert player.status == PlaybackStatus.STOPPED
        assert player.message.text == "Stopped."

    def test_events_after_load_are_ignored(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        old = engine.last_id

        player.load(Document("New text. Second part.", title="Other"))
        assert "cancel" in engine.calls
        engine.complete(old)

        assert player.status == PlaybackStatus.STOPPED
        assert player.current_sentence_index == 0
        assert player.document.title == "Other"

    def test_ids_increase_per_utterance(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.complete()
        player.jump_to(0)
        ids = [s["id"] for s in engine.spoken]
        assert ids == sorted(set(ids))


class TestErrors:
    def test_engine_error_stops_and_keeps_position(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.complete()

        engine.fail(error="synthesis-failed")
        assert player.status == PlaybackStatus.STOPPED
        assert player.current_sentence_index == 1
        assert player.highlight_index == 1
        assert player.message.kind == "error"
        assert "synthesis-failed" in player.message.text

    def test_play_after_error_retries_same_sentence(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.complete()
        engine.fail()

        player.play()
        assert engine.last_text == "How are you?"

    def test_speak_raising_stops_player(self, player, engine):
        player.load_text(THREE_SENTENCES)
        engine.fail_next_speak = True

        assert not player.play()
        assert player.status == PlaybackStatus.STOPPED
        assert player.utterance is None
        assert "audio device unavailable" in player.message.text

    def test_play_without_sentences(self, player, engine):
        assert not player.play()
        assert player.status == PlaybackStatus.IDLE

        player.load_text("  \n\n ")
        assert player.message.kind == "warning"
        assert not player.play()
        assert player.status == PlaybackStatus.STOPPED
        assert player.message.text == "No text loaded to play or no sentences found."
        assert engine.spoken == []

    def test_jump_without_sentences(self, player, engine):
        assert not player.jump_to(2)
        assert engine.spoken == []

    def test_pause_failure_stops_player(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        snapshots = []
        player.subscribe(snapshots.append)
        engine.failing.add("pause")

        assert not player.pause()
        assert player.status == PlaybackStatus.STOPPED
        assert player.utterance is None
        assert engine.live == set()
        assert player.message.kind == "error"
        assert "pause failed" in player.message.text
        assert snapshots[-1].status == PlaybackStatus.STOPPED

    def test_resume_failure_stops_player(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.complete()
        player.pause()
        engine.failing.add("resume")

        assert not player.play()
        assert player.status == PlaybackStatus.STOPPED
        assert player.current_sentence_index == 1
        assert "resume failed" in player.message.text

        engine.failing.clear()
        assert player.play()
        assert engine.last_text == "How are you?"

    def test_cancel_failure_does_not_block_stop(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.complete()
        old = engine.last_id
        engine.failing.add("cancel")

        player.stop()
        assert player.status == PlaybackStatus.STOPPED
        assert player.current_sentence_index == 0
        assert player.utterance is None

        engine.complete(old)
        assert player.current_sentence_index == 0
        assert player.message.text == "Stopped."

    def test_cancel_failure_does_not_block_load(self, player, engine):
        engine.failing.add("cancel")
        player.load_text(THREE_SENTENCES)
        assert player.status == PlaybackStatus.STOPPED
        assert len(player.sentences) == 3

    def test_volume_failure_keeps_playing(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.failing.add("set_volume")

        player.change_volume(0.2)
        assert player.state.volume == 0.2
        assert player.status == PlaybackStatus.PLAYING


class TestPauseResume:
    def test_pause_keeps_utterance_and_resume_continues_it(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        utterance = player.utterance

        assert player.pause()
        assert player.status == PlaybackStatus.PAUSED
        assert player.utterance == utterance
        assert "pause" in engine.calls

        assert player.play()
        assert "resume" in engine.calls
        assert player.status == PlaybackStatus.PLAYING
        assert len(engine.spoken) == 1
        assert player.message.text == "Resuming..."

    def test_pause_when_not_playing(self, player, engine):
        player.load_text(THREE_SENTENCES)
        assert not player.pause()
        assert player.status == PlaybackStatus.STOPPED

    def test_completion_while_paused_advances_without_speaking(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        player.pause()

        engine.complete()
        assert player.status == PlaybackStatus.PAUSED
        assert player.current_sentence_index == 1
        assert player.utterance is None
        assert len(engine.spoken) == 1

        player.play()
        assert engine.last_text == "How are you?"
        assert "resume" not in engine.calls


class TestSettings:
    def test_speed_change_restarts_sentence(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        old = engine.last_id

        player.change_speed(1.5)
        assert engine.last_text == "Hello world."
        assert engine.spoken[-1]["speed"] == 1.5
        assert engine.last_id != old

        engine.complete(old)
        assert player.current_sentence_index == 0

    def test_speed_change_while_stopped_applies_on_play(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.change_speed(0.75)
        assert engine.spoken == []

        player.play()
        assert engine.spoken[-1]["speed"] == 0.75

    @pytest.mark.parametrize("speed", [0, -1, math.nan])
    def test_invalid_speed_rejected(self, player, speed):
        with pytest.raises(ValueError):
            player.change_speed(speed)

    def test_invalid_initial_speed_rejected(self, engine):
        with pytest.raises(ValueError):
            ReadAlongPlayer(engine, speed=-1, report_status=False)

    def test_volume_applies_live(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()

        player.change_volume(0.3)
        assert engine.volume == 0.3
        assert len(engine.spoken) == 1
        assert player.state.volume == 0.3

    def test_volume_clamped_and_skipped_without_utterance(self, player, engine):
        player.change_volume(5)
        assert player.state.volume == 1.0
        assert "set_volume" not in engine.calls

    def test_voice_change_while_paused_drops_suspended_utterance(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        player.pause()

        player.change_voice("en")
        assert player.status == PlaybackStatus.PAUSED
        assert player.utterance is None
        assert engine.live == set()

        player.play()
        assert engine.spoken[-1]["voice_id"] == "en"
        assert engine.last_text == "Hello world."

    def test_state_is_a_copy(self, player):
        state = player.state
        state.speed = 9.0
        assert player.state.speed == 1.0


class TestProgressAndHighlight:
    def test_boundary_updates_progress(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        engine.complete()

        engine.boundary(6, 5)
        assert player.progress == pytest.approx((1 + 11 / 12) / 3)
        assert player.current_sentence_index == 1

    def test_coarse_progress_at_sentence_start(self, player, engine):
        player.load_text(numbered_text(4))
        player.jump_to(2)
        assert player.progress == 0.5

    def test_markup_highlights_current_sentence(self, player, engine):
        player.load_text(THREE_SENTENCES)
        assert player.highlighted_markup == THREE_SENTENCES

        player.play()
        assert player.highlighted_markup == f"{HIGHLIGHT_START}Hello world.{HIGHLIGHT_END} How are you? Fine!"

    def test_markup_round_trips_text_with_marker_code_points(self, player, engine):
        text = "Private \ue000 use. Next \ue001 one."
        player.load_text(text)
        assert strip_markers(player.highlighted_markup) == text

        player.play()
        assert strip_markers(player.highlighted_markup) == text
        engine.complete()
        assert strip_markers(player.highlighted_markup) == text
        assert player.document.text == text

    def test_preview_moves_without_speaking(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        snapshots = []
        player.subscribe(snapshots.append)

        assert player.preview(2)
        assert player.status == PlaybackStatus.PAUSED
        assert player.current_sentence_index == 2
        assert player.highlight_index == 2
        assert player.progress == pytest.approx(2 / 3)
        assert engine.live == set()
        assert len(engine.spoken) == 1
        assert snapshots[-1].scroll is False

    def test_snapshot(self, player, engine):
        player.load_text(THREE_SENTENCES, title="Greeting")
        player.play()
        engine.complete()

        snapshot = player.snapshot()
        assert snapshot.title == "Greeting"
        assert snapshot.status == PlaybackStatus.PLAYING
        assert snapshot.sentence_count == 3
        assert snapshot.highlight_index == 1
        assert 0 < snapshot.elapsed < snapshot.total


class TestListeners:
    def test_listener_receives_snapshots(self, player, engine):
        snapshots = []
        unsubscribe = player.subscribe(snapshots.append)

        player.load_text(THREE_SENTENCES)
        player.play()
        assert snapshots[-1].status == PlaybackStatus.PLAYING
        assert snapshots[-1].highlight_index == 0
        assert snapshots[-1].scroll is True

        unsubscribe()
        count = len(snapshots)
        engine.complete()
        assert len(snapshots) == count

    def test_stale_event_does_not_notify(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        old = engine.last_id
        player.jump_to(2)

        snapshots = []
        player.subscribe(snapshots.append)
        engine.complete(old)
        assert snapshots == []

    def test_clear_returns_to_idle(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()

        player.clear()
        assert player.status == PlaybackStatus.IDLE
        assert player.document is None
        assert player.sentences == ()
        assert player.highlighted_markup == ""
        assert engine.live == set()

    def test_close_detaches_from_engine(self, player, engine):
        player.load_text(THREE_SENTENCES)
        player.play()
        player.close()

        engine.complete()
        assert player.current_sentence_index == 0


class TestSynchronousEngine:
    def test_completion_fired_inside_speak_chains_to_the_end(self):
        engine = FakeEngine(auto_complete=True)
        player = ReadAlongPlayer(engine, speed=1.0, volume=1.0, report_status=False)
        player.load_text(THREE_SENTENCES)

        player.play()
        assert [s["text"] for s in engine.spoken] == ["Hello world.", "How are you?", "Fine!"]
        assert player.status == PlaybackStatus.STOPPED
        assert player.message.text == "Finished reading."


def _complete(player, engine):
    if engine.spoken:
        engine.complete()


def _fail(player, engine):
    if engine.spoken:
        engine.fail()


def _stale_complete(player, engine):
    if engine.spoken:
        engine.complete(engine.spoken[0]["id"])


OPERATIONS = {
    "play": lambda p, e: p.play(),
    "pause": lambda p, e: p.pause(),
    "stop": lambda p, e: p.stop(),
    "next": lambda p, e: p.jump_to(p.current_sentence_index + 1),
    "preview": lambda p, e: p.preview(0),
    "speed": lambda p, e: p.change_speed(1.5),
    "complete": _complete,
    "fail": _fail,
    "stale": _stale_complete,
}


def test_at_most_one_utterance_outstanding():
    for sequence in itertools.product(OPERATIONS, repeat=3):
        engine = FakeEngine()
        player = ReadAlongPlayer(engine, speed=1.0, volume=1.0, report_status=False)
        player.load_text(THREE_SENTENCES)

        for name in sequence:
            OPERATIONS[name](player, engine)

            utterance = player.utterance
            expected = {utterance.id} if utterance else set()
            assert engine.live == expected, sequence
            if player.status == PlaybackStatus.PLAYING:
                assert utterance is not None, sequence
            assert 0 <= player.current_sentence_index < 3, sequence
