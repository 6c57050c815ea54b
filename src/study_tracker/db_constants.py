from __future__ import annotations

DEFAULT_SUBJECT = "General Study"

TODO_PENDING = "pending"
TODO_COMPLETED = "completed"

PHASE_MINUTES_MAX = 180
STUDY_GOAL_HOURS_MAX = 168
