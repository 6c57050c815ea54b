from __future__ import annotations

import logging
from collections.abc import Sequence

from study_tracker.config import load_settings, load_timer_defaults
from study_tracker.db import Database
from study_tracker.logging_setup import setup_logging
from study_tracker.time_utils import utc_now

logger = logging.getLogger(__name__)

USAGE = "Usage: python provision.py <email> <full name>"


def run_provision(argv: Sequence[str]) -> str:
    """Create an owner with the configured timer defaults and return its bearer token."""
    if len(argv) < 2:
        raise SystemExit(USAGE)
    email, full_name = argv[0], " ".join(argv[1:])

    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    defaults = load_timer_defaults(settings.timer_defaults_path)
    user, token = db.provision_user(email, full_name, utc_now(), preferences=defaults)
    logger.info("owner %s ready", user.email)
    return token
