"""Entry point for the nightly anomaly sweep.

Scheduled externally, e.g. crontab: 30 23 * * * python scripts/run_daily_detection.py
"""

from __future__ import annotations

import sys

from attendance_tracker.container import build_container
from attendance_tracker.main import load_settings


def main() -> int:
    _, settings = load_settings()
    container = build_container(db_config=dict(settings.DB_CONFIG))
    report = container.detection_service.run_daily_detection()
    print(f"OK: daily detection {report.to_dict()}")
    return 1 if report.failures else 0


if __name__ == "__main__":
    sys.exit(main())
