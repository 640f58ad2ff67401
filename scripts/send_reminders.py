#!/usr/bin/env python3
"""
Trigger the day-before appointment reminders.

Usage:
    python scripts/send_reminders.py
    python scripts/send_reminders.py --date 2026-10-21

Environment Variables:
    ADMIN_SECRET: Admin secret key sent as X-Admin-Secret
    API_URL: Base API URL (default: http://localhost:8000)
"""

import argparse
import os
import sys
from datetime import date

import dotenv
import httpx

dotenv.load_dotenv()


def send_reminders(reminder_date: date | None = None) -> dict:
    """Ask the API to email the reminders of a day."""
    admin_secret = os.getenv("ADMIN_SECRET")
    if not admin_secret:
        print("Error: ADMIN_SECRET environment variable not set", file=sys.stderr)
        sys.exit(1)

    api_url = os.getenv("API_URL", "http://localhost:8000")
    url = f"{api_url}/api/v1/admin/reminders"

    params = {}
    if reminder_date:
        params["date"] = reminder_date.isoformat()

    try:
        response = httpx.post(
            url,
            params=params,
            headers={"X-Admin-Secret": admin_secret},
            timeout=120,
        )
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        print(f"HTTP Error: {e}", file=sys.stderr)
        print(f"Response: {e.response.text}", file=sys.stderr)
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Request Error: {e}", file=sys.stderr)
        sys.exit(1)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Send reminder emails for the appointments of a day",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Tomorrow's appointments (run daily from cron)
  python send_reminders.py

  # A specific day
  python send_reminders.py --date 2026-10-21
        """,
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        help="Appointment date as YYYY-MM-DD (default: tomorrow)",
    )

    args = parser.parse_args()

    result = send_reminders(args.date)

    print(f"✓ Reminders for {result['date']}")
    print(f"   Due:  {result['due']} appointment(s)")
    print(f"   Sent: {result['sent']} email(s)")


if __name__ == "__main__":
    main()
