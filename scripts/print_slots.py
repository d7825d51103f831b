from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone

from coachbook.core.database import AsyncSessionLocal, engine
from coachbook.services.availability_service import AvailabilityService
from coachbook.services.db_service import DBService


async def run_print(
    coach_id: str,
    duration: int,
    tz: str,
    as_json: bool,
) -> None:
    async with AsyncSessionLocal() as session:
        service = AvailabilityService(DBService(session))
        view = await service.get_available_slots(
            coach_id=coach_id,
            duration_minutes=duration,
            requester_timezone=tz,
            now=datetime.now(timezone.utc),
        )
    await engine.dispose()

    if as_json:
        print(json.dumps(view.to_dict(), indent=2))
        return

    print(f"Coach timezone: {view.coach_timezone}")
    if not view.slots:
        print("No bookable slots in the next week.")
        return
    for label, slots in view.days.items():
        times = ", ".join(slot.display_time for slot in slots)
        print(f"{label}: {times}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print a coach's bookable slots from the DB.")
    parser.add_argument("--coach-id", required=True, help="Coach UUID")
    parser.add_argument("--duration", type=int, default=60, help="Session length in minutes")
    parser.add_argument("--timezone", default="UTC", help="IANA zone to display slots in")
    parser.add_argument("--json", action="store_true", help="Print the raw API payload")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    asyncio.run(run_print(args.coach_id, args.duration, args.timezone, args.json))


if __name__ == "__main__":
    main()
