from __future__ import annotations

from study_tracker.db_models import TimerPreferences

PHASE_WORK = "work"
PHASE_SHORT_BREAK = "short-break"
PHASE_LONG_BREAK = "long-break"
PHASES = (PHASE_WORK, PHASE_SHORT_BREAK, PHASE_LONG_BREAK)

# Every Nth completed work phase earns a long break.
LONG_BREAK_EVERY = 4

PHASE_LABELS = {
    PHASE_WORK: "Focus Time",
    PHASE_SHORT_BREAK: "Short Break",
    PHASE_LONG_BREAK: "Long Break",
}


def next_phase(current: str, cycle_count: int) -> tuple[str, int]:
    if current == PHASE_WORK:
        new_count = cycle_count + 1
        if new_count % LONG_BREAK_EVERY == 0:
            return PHASE_LONG_BREAK, new_count
        return PHASE_SHORT_BREAK, new_count
    return PHASE_WORK, cycle_count


def normalize_phase(raw: str | None) -> str:
    if raw in PHASES:
        return str(raw)
    return PHASE_WORK


def phase_minutes(phase: str, prefs: TimerPreferences) -> int:
    if phase == PHASE_SHORT_BREAK:
        return prefs.short_break_minutes
    if phase == PHASE_LONG_BREAK:
        return prefs.long_break_minutes
    return prefs.work_minutes


def progress_ratio(total_seconds: int, remaining_seconds: int) -> float:
    if total_seconds <= 0:
        return 1.0
    ratio = (total_seconds - remaining_seconds) / total_seconds
    return min(1.0, max(0.0, ratio))


def format_clock(seconds: int) -> str:
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    return f"{mins:02d}:{secs:02d}"
