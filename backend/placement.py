"""
Free-slot search over busy time.

Busy intervals are [start, end) minute ranges from midnight, kept sorted by
start. An interval flagged is_anchor belongs to a mandatory anchored task.
"""
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class BusyInterval:
    start: int
    end: int
    is_anchor: bool = False


@dataclass(frozen=True)
class CrunchOptions:
    min_duration: int = 0
    anchor_only: bool = True
    template_id: Optional[str] = None


@dataclass(frozen=True)
class Slot:
    start: int
    end: int
    used_fallback: bool = False
    advisory: Optional[str] = None


@dataclass(frozen=True)
class Gap:
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start


def push_busy(busy: list[BusyInterval], start: int, end: int, is_anchor: bool = False) -> None:
    busy.append(BusyInterval(start, end, is_anchor))
    busy.sort(key=lambda b: b.start)


def next_slot(
    busy: Sequence[BusyInterval],
    window_start: int,
    window_end: int,
    candidate_start: int,
    duration: int,
    crunch: Optional[CrunchOptions] = None,
) -> Optional[Slot]:
    """
    Walk the gaps between busy intervals from max(window_start, candidate_start)
    and return the first one that fits duration.

    With crunch.min_duration set, a gap too short for the full duration but
    long enough for the minimum is taken at the reduced length; with
    crunch.anchor_only that only applies to gaps that end at an anchor.
    """
    t = max(window_start, candidate_start)
    min_duration = crunch.min_duration if crunch and crunch.min_duration else 0

    for i in range(len(busy) + 1):
        block = busy[i] if i < len(busy) else None
        gap_end = min(block.start, window_end) if block else window_end
        if t + duration <= gap_end:
            return Slot(t, t + duration)

        if min_duration > 0 and t < gap_end:
            next_is_anchor = block is not None and block.is_anchor
            if (not crunch.anchor_only or next_is_anchor) and gap_end - t >= min_duration:
                advisory = None
                if crunch.template_id:
                    advisory = f"crunch_time_min_duration_used:{crunch.template_id}"
                return Slot(t, t + min_duration, used_fallback=True, advisory=advisory)

        if block is None:
            break
        t = max(t, block.end)
        if t >= window_end:
            break
    return None


def detect_gaps(
    intervals: Sequence[BusyInterval],
    window_start: int,
    window_end: int,
    min_gap: int = 5,
) -> list[Gap]:
    """Free gaps of at least min_gap minutes inside the window, after merging overlaps."""
    if window_end <= window_start:
        return []
    clamped = sorted(
        (
            (max(window_start, i.start), min(window_end, i.end))
            for i in intervals
            if min(window_end, i.end) > max(window_start, i.start)
        ),
    )

    merged: list[list[int]] = []
    for start, end in clamped:
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    gaps: list[Gap] = []
    cursor = window_start
    for start, end in merged:
        if start - cursor >= min_gap:
            gaps.append(Gap(cursor, start))
        cursor = max(cursor, end)
        if cursor >= window_end:
            break
    if window_end - cursor >= min_gap:
        gaps.append(Gap(cursor, window_end))
    return gaps
