"""
Transport Controller

Turns user intents (buttons, seek bar, settings sliders) into player
transitions.

Seek-bar dragging has three phases:
    begin   suspend audio and move the reading position, no speech
    update  keep moving the position, no speech and no scrolling
    end     jump to the final position and resume speaking
A plain click on the seek bar is begin + end at the same position.
"""

import math
from typing import Optional

from readaloud.playback.player import PlaybackStatus, ReadAlongPlayer
from readaloud.playback.position_map import fraction_to_sentence_index, pointer_to_fraction
from readaloud.utils.config import config


class SeekDrag:
    """A drag on the seek bar, from pointer down to pointer up."""

    def __init__(self, player: ReadAlongPlayer):
        self.player = player
        self.active = False
        self.provisional_index: Optional[int] = None
        self._origin_index = 0
        self._origin_status = PlaybackStatus.STOPPED

    def begin(self, fraction: float) -> Optional[int]:
        """
        Start dragging at a seek-bar fraction.

        Returns:
            The provisional sentence index, or None for an empty document
        """
        if not self.player.sentences:
            return None

        self._origin_index = self.player.current_sentence_index
        self._origin_status = self.player.status
        self.active = True
        return self.update(fraction)

    def update(self, fraction: float) -> Optional[int]:
        """Move the provisional position; ignored when no drag is active."""
        if not self.active:
            return None

        self.provisional_index = fraction_to_sentence_index(
            fraction, len(self.player.sentences)
        )
        self.player.preview(self.provisional_index)
        return self.provisional_index

    def end(self) -> bool:
        """Finish the drag and play from the provisional position."""
        if not self.active:
            return False

        self.active = False
        index = self.provisional_index
        self.provisional_index = None
        return self.player.jump_to(index)

    def cancel(self) -> None:
        """Abandon the drag and return to where it started, without speaking."""
        if not self.active:
            return

        self.active = False
        self.provisional_index = None
        self.player.preview(self._origin_index)
        if self._origin_status == PlaybackStatus.PLAYING:
            self.player.report("Seek cancelled. Paused.")


class TransportController:
    """Player controls: play/pause, stop, next/previous, seek and settings."""

    def __init__(
        self,
        player: ReadAlongPlayer,
        speed_min: Optional[float] = None,
        speed_max: Optional[float] = None,
    ):
        """
        Initialize the controller.

        Args:
            player: Player to control
            speed_min: Lowest allowed speed (default from config)
            speed_max: Highest allowed speed (default from config)
        """
        self.player = player
        self.speed_min = speed_min if speed_min is not None else config.speed_min
        self.speed_max = speed_max if speed_max is not None else config.speed_max
        self.drag = SeekDrag(player)

    def toggle(self) -> bool:
        return self.player.toggle()

    def stop(self) -> None:
        self.player.stop()

    def jump_to(self, index: int) -> bool:
        """Play from a sentence, e.g. after a click on it in the text."""
        return self.player.jump_to(index)

    def next(self) -> bool:
        """Skip to the next sentence; at the last one, stop."""
        count = len(self.player.sentences)
        index = self.player.current_sentence_index

        if index < count - 1:
            if self.player.jump_to(index + 1):
                self.player.report("Playing next sentence.")
                return True
            return False

        self.player.stop()
        self.player.report("Already at the end.", "warning")
        return False

    def previous(self) -> bool:
        """Go back one sentence; at the first one, do nothing."""
        index = self.player.current_sentence_index

        if index > 0 and self.player.sentences:
            if self.player.jump_to(index - 1):
                self.player.report("Playing previous sentence.")
                return True
            return False

        self.player.report("Already at the beginning.", "warning")
        return False

    def seek(self, fraction: float) -> bool:
        """Jump to a seek-bar fraction (click without drag)."""
        if self.drag.begin(fraction) is None:
            self.player.report("No text loaded to play or no sentences found.", "warning")
            return False
        return self.drag.end()

    def click(self, x: float, width: float) -> bool:
        """Click on a seek bar of the given width at pointer position x."""
        return self.seek(pointer_to_fraction(x, width))

    def press(self, x: float, width: float) -> Optional[int]:
        return self.drag.begin(pointer_to_fraction(x, width))

    def move(self, x: float, width: float) -> Optional[int]:
        return self.drag.update(pointer_to_fraction(x, width))

    def release(self) -> bool:
        return self.drag.end()

    def set_speed(self, speed: float) -> float:
        """
        Change speed, clamped to [speed_min, speed_max].

        Raises:
            ValueError: If speed is not a positive number
        """
        if math.isnan(speed) or speed <= 0:
            raise ValueError(f"Speed must be a positive number, got {speed}")
        speed = min(max(speed, self.speed_min), self.speed_max)
        self.player.change_speed(speed)
        return speed

    def set_volume(self, volume: float) -> float:
        """Change volume, clamped to [0, 1]."""
        volume = 1.0 if math.isnan(volume) else min(max(volume, 0.0), 1.0)
        self.player.change_volume(volume)
        return volume

    def set_voice(self, voice_id: Optional[str]) -> None:
        self.player.change_voice(voice_id or None)
