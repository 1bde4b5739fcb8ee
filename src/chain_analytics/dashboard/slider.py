"""Dual-thumb range slider and its mapping to calendar dates.

`DualRangeSlider` holds the two thumb positions and the drag state. Every
update is snapped to the step and clamped so that
`min <= left <= right - min_gap` and `left + min_gap <= right <= max`; a
move that would cross the other thumb stops at the boundary instead.

`RangeDateMapper` converts thumb positions to days counted from a fixed
epoch and back.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from enum import Enum

from chain_analytics.models import DateWindow, SliderRange

log = logging.getLogger(__name__)


class Thumb(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class SliderMode(str, Enum):
    IDLE = "idle"
    DRAGGING_LEFT = "dragging-left"
    DRAGGING_RIGHT = "dragging-right"


_DRAG_MODE = {Thumb.LEFT: SliderMode.DRAGGING_LEFT, Thumb.RIGHT: SliderMode.DRAGGING_RIGHT}

PAGE_MULTIPLIER = 10


def clamp(value: int, lo: int, hi: int) -> int:
    return min(hi, max(lo, value))


class DualRangeSlider:
    """State machine over two integer thumbs on `[minimum, maximum]`.

    Args:
        minimum: Lowest thumb position.
        maximum: Highest thumb position.
        step: Granularity of thumb positions.
        min_gap: Minimum distance between the thumbs.
        left: Initial left thumb (defaults to `minimum`).
        right: Initial right thumb (defaults to `maximum`).

    Raises:
        ValueError: if `step <= 0`, `min_gap < 0` or the interval is shorter
            than `min_gap`.
    """

    def __init__(
        self,
        minimum: int,
        maximum: int,
        step: int = 1,
        min_gap: int = 0,
        left: int | None = None,
        right: int | None = None,
    ) -> None:
        if step <= 0:
            raise ValueError("step must be positive")
        if min_gap < 0:
            raise ValueError("min_gap must not be negative")
        if maximum - minimum < min_gap:
            raise ValueError(
                f"slider interval [{minimum}, {maximum}] is shorter than min_gap={min_gap}"
            )
        self.minimum = minimum
        self.maximum = maximum
        self.step = step
        self.min_gap = min_gap
        self.mode = SliderMode.IDLE

        self.left = minimum
        self.right = maximum
        self.set_range(minimum if left is None else left, maximum if right is None else right)

    # -------------------------
    # Invariant helpers
    # -------------------------
    def snap(self, value: float) -> int:
        """Round to the nearest step (halves round up)."""
        return int(math.floor(value / self.step + 0.5)) * self.step

    def _move_left(self, value: float) -> int:
        self.left = clamp(self.snap(value), self.minimum, self.right - self.min_gap)
        return self.left

    def _move_right(self, value: float) -> int:
        self.right = clamp(self.snap(value), self.left + self.min_gap, self.maximum)
        return self.right

    def _move(self, thumb: Thumb, value: float) -> int:
        if Thumb(thumb) is Thumb.LEFT:
            return self._move_left(value)
        return self._move_right(value)

    @property
    def range(self) -> SliderRange:
        return SliderRange(left=self.left, right=self.right)

    @property
    def active_thumb(self) -> Thumb | None:
        if self.mode is SliderMode.DRAGGING_LEFT:
            return Thumb.LEFT
        if self.mode is SliderMode.DRAGGING_RIGHT:
            return Thumb.RIGHT
        return None

    def set_range(self, left: float, right: float) -> SliderRange:
        """Place both thumbs programmatically (presets), clamping each in turn.

        The right thumb is placed first against the interval bounds, then the
        left thumb against it, then the right thumb again against the left.
        """
        self.right = clamp(self.snap(right), self.minimum + self.min_gap, self.maximum)
        self._move_left(left)
        self._move_right(right)
        return self.range

    # -------------------------
    # Pointer events
    # -------------------------
    def pointer_down(self, thumb: Thumb) -> bool:
        """Start dragging `thumb`; ignored while another drag is active."""
        if self.mode is not SliderMode.IDLE:
            log.debug("pointer_down(%s) ignored while %s", thumb, self.mode.value)
            return False
        self.mode = _DRAG_MODE[Thumb(thumb)]
        return True

    def pointer_move(self, value: float) -> SliderRange:
        """Move the active thumb to `value` (no-op when idle)."""
        thumb = self.active_thumb
        if thumb is not None:
            self._move(thumb, value)
        return self.range

    def pointer_up(self) -> SliderRange:
        self.mode = SliderMode.IDLE
        return self.range

    def track_click(self, value: float) -> SliderRange:
        """Move the thumb closer to `value`; a tie moves the left thumb."""
        v = clamp(self.snap(value), self.minimum, self.maximum)
        if abs(v - self.left) <= abs(v - self.right):
            self._move_left(v)
        else:
            self._move_right(v)
        return self.range

    # -------------------------
    # Keyboard
    # -------------------------
    def key_down(self, thumb: Thumb, key: str) -> bool:
        """Apply a keyboard command to `thumb`.

        Arrow keys step by `step`, Page Up/Down by ten steps, Home/End jump to
        the thumb's lower/upper boundary.

        Returns:
            True when the key was handled, False for unknown keys.
        """
        thumb = Thumb(thumb)
        current = self.left if thumb is Thumb.LEFT else self.right
        big = self.step * PAGE_MULTIPLIER

        if key == "ArrowLeft":
            target = current - self.step
        elif key == "ArrowRight":
            target = current + self.step
        elif key == "PageDown":
            target = current - big
        elif key == "PageUp":
            target = current + big
        elif key == "Home":
            target = self.minimum if thumb is Thumb.LEFT else self.left + self.min_gap
        elif key == "End":
            target = self.maximum if thumb is Thumb.RIGHT else self.right - self.min_gap
        else:
            return False

        self._move(thumb, target)
        return True


class RangeDateMapper:
    """Pure conversion between slider positions and calendar days.

    Args:
        epoch: Day represented by slider position 0.
        total_days: Highest slider position.
    """

    def __init__(self, epoch: dt.date, total_days: int) -> None:
        if total_days < 0:
            raise ValueError("total_days must not be negative")
        self.epoch = epoch
        self.total_days = total_days

    @classmethod
    def between(cls, start: dt.date, end: dt.date) -> "RangeDateMapper":
        """Mapper whose positions span `start` (0) to `end` (total_days)."""
        return cls(start, (end - start).days)

    @property
    def last_day(self) -> dt.date:
        return self.to_date(self.total_days)

    def to_date(self, value: int) -> dt.date:
        return self.epoch + dt.timedelta(days=int(value))

    def to_value(self, day: dt.date | dt.datetime | str) -> int:
        """Inverse of `to_date`: whole days since the epoch, rounded."""
        if isinstance(day, str):
            day = dt.date.fromisoformat(day.strip()[:10])
        if isinstance(day, dt.datetime):
            epoch = dt.datetime.combine(self.epoch, dt.time(), tzinfo=day.tzinfo)
            return int(math.floor((day - epoch) / dt.timedelta(days=1) + 0.5))
        return (day - self.epoch).days

    def to_window(self, slider: SliderRange) -> DateWindow:
        return DateWindow(start=self.to_date(slider.left), end=self.to_date(slider.right))

    def to_slider_range(self, window: DateWindow) -> SliderRange:
        """Positions for `window`, clamped to `[0, total_days]`."""
        left = clamp(self.to_value(window.start), 0, self.total_days)
        right = clamp(self.to_value(window.end), left, self.total_days)
        return SliderRange(left=left, right=right)

    def full_range(self) -> SliderRange:
        return SliderRange(left=0, right=self.total_days)

    def last_days(self, days: int) -> SliderRange:
        """The `days` days ending on the last day (quick-jump presets)."""
        return SliderRange(left=max(0, self.total_days - days), right=self.total_days)

    def slider(self, min_gap: int = 0, step: int = 1, window: DateWindow | None = None) -> DualRangeSlider:
        """Build a slider over this mapper's positions, optionally placed on `window`."""
        initial = self.to_slider_range(window) if window is not None else self.full_range()
        return DualRangeSlider(
            0,
            self.total_days,
            step=step,
            min_gap=min_gap,
            left=initial.left,
            right=initial.right,
        )
