from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from study_tracker.errors import StudyError
from study_tracker.main import run_provision


def main() -> None:
    try:
        token = run_provision(sys.argv[1:])
    except StudyError as exc:
        raise SystemExit(exc.message) from exc
    print(token)


if __name__ == "__main__":
    main()
