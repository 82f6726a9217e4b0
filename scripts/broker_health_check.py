#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import create_engine, text

STUCK_PROCESSING_MINUTES = 15


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    broker_url = os.environ.get("BROKER_DATABASE_URL")
    if not broker_url:
        raise RuntimeError("BROKER_DATABASE_URL not found (.env or env vars).")
    attendance_url = os.environ.get("ATTENDANCE_DATABASE_URL")

    now_utc = datetime.now(timezone.utc)
    report: dict = {
        "generated_at_utc": now_utc.isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    broker_engine = create_engine(broker_url)
    with broker_engine.connect() as conn:
        status_counts = {
            str(row[0]): int(row[1])
            for row in conn.execute(
                text("select status, count(*) from broker_messages group by status")
            ).fetchall()
        }
        add("broker_status_counts", "ok", status_counts)

        dead_lettered = conn.execute(
            text(
                """
                select queue, message_type, count(*)
                from broker_messages
                where status = 'DEAD_LETTERED'
                group by queue, message_type
                order by count(*) desc
                """
            )
        ).fetchall()
        add(
            "broker_dead_lettered_by_queue",
            "warn" if dead_lettered else "ok",
            {"rows": [list(row) for row in dead_lettered]},
        )

        stuck = conn.execute(
            text(
                """
                select message_id, queue, attempts, updated_at
                from broker_messages
                where status = 'PROCESSING' and updated_at < :cutoff
                order by updated_at asc
                limit 20
                """
            ),
            {"cutoff": now_utc - timedelta(minutes=STUCK_PROCESSING_MINUTES)},
        ).fetchall()
        add(
            "broker_stuck_processing",
            "fail" if stuck else "ok",
            {
                "older_than_minutes": STUCK_PROCESSING_MINUTES,
                "rows": [[str(row[0]), row[1], row[2], str(row[3])] for row in stuck],
            },
        )

        overdue = conn.execute(
            text(
                """
                select count(*)
                from broker_messages
                where status = 'PENDING' and scheduled_at_utc < :cutoff
                """
            ),
            {"cutoff": now_utc - timedelta(minutes=STUCK_PROCESSING_MINUTES)},
        ).scalar()
        add("broker_overdue_pending", "warn" if overdue else "ok", {"count": int(overdue or 0)})

    if attendance_url:
        attendance_engine = create_engine(attendance_url)
        with attendance_engine.connect() as conn:
            checked_in_without_time = conn.execute(
                text(
                    """
                    select id
                    from attendance_records
                    where status = 'CHECKED_IN' and check_in_time is null and is_deleted = false
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_checked_in_without_time",
                "fail" if checked_in_without_time else "ok",
                {"sample_ids": [str(row[0]) for row in checked_in_without_time]},
            )

            duplicate_templates = conn.execute(
                text(
                    """
                    select guard_id, count(*)
                    from biometric_logs
                    where event_type = 'REGISTRATION' and is_verified = true
                    group by guard_id
                    having count(*) > 1
                    """
                )
            ).fetchall()
            add(
                "duplicate_verified_face_templates",
                "fail" if duplicate_templates else "ok",
                {"rows": [[str(row[0]), row[1]] for row in duplicate_templates]},
            )
    else:
        add("attendance_checks", "warn", {"reason": "ATTENDANCE_DATABASE_URL not set"})

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
