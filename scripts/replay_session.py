"""
CLI tool to replay recorded tool-call events through an extraction session.

Usage:
    python scripts/replay_session.py <events.json> [--transcript call.txt]
    python scripts/replay_session.py <events.json> --refinement refined.json

The events file is a JSON list. Each entry is either a tool-call update
or a user edit from the booking form:

    [
        {"key": "first_name", "value": "john", "confidence": 0.9},
        {"key": "dob", "value": "03/04/1990"},
        {"edit": "lastName", "value": "Smith"}
    ]

Examples:
    # Real-time events only
    python scripts/replay_session.py fixtures/call_42.json

    # With a rules-based second pass over the saved transcript
    python scripts/replay_session.py fixtures/call_42.json --transcript fixtures/call_42.txt
"""

import argparse
import asyncio
import json
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voice_intake.logging_config import setup_logging, get_logger
from voice_intake.schemas.fields import FieldMap
from voice_intake.services.extraction_session import ExtractionSession
from voice_intake.services.transcript_fallback import (
    build_refinement_map,
    extract_from_transcript,
    is_transcript_sufficient,
)
from voice_intake.workers.event_relay import SessionEventRelay

logger = get_logger(__name__)


def _load_json(path: str):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


async def replay(
    events_path: str,
    transcript_path: str | None = None,
    refinement_path: str | None = None,
) -> None:
    """Feed every recorded event through the relay, then finalize and print the result."""
    events = _load_json(events_path)
    if not isinstance(events, list):
        print("Error: the events file must contain a JSON list")
        return

    session = ExtractionSession()
    session.start()
    relay = SessionEventRelay(session)
    await relay.start()

    try:
        for event in events:
            if "edit" in event:
                # Form edits are applied in order with the tool calls.
                await relay.join()
                session.set_user_value(event["edit"], event.get("value"))
            elif "key" in event:
                relay.submit(event["key"], event.get("value"), event.get("confidence"))
            else:
                logger.warning("replay_event_skipped", event=event)
    finally:
        await relay.stop()

    refinement: FieldMap | None = None
    if refinement_path:
        refinement = build_refinement_map(_load_json(refinement_path))
    elif transcript_path:
        with open(transcript_path, encoding="utf-8") as f:
            transcript = f.read()
        if is_transcript_sufficient(transcript):
            refinement = extract_from_transcript(transcript)
        else:
            print("Transcript too short for a second pass, skipping refinement")

    result = session.finalize(refinement)
    snapshot = result.snapshot

    print(f"Session {snapshot.session_id}: {len(snapshot.fields)} fields, "
          f"overall confidence {snapshot.overall_confidence:.2f}")
    for field, value in snapshot.fields.items():
        flag = "  REVIEW" if value.needs_review else ""
        print(f"  {field.value:<18} {str(value.value):<32} {value.confidence:.2f}  {value.source.value}{flag}")

    if snapshot.requires_manual_review:
        print("Session requires manual review.")
    if result.fields_needing_review:
        print("Needs review: " + ", ".join(f.value for f in result.fields_needing_review))


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay tool-call events through an extraction session")
    parser.add_argument("events", help="JSON file with the recorded events")
    parser.add_argument("--transcript", help="Transcript file for a rules-based second pass")
    parser.add_argument("--refinement", help="JSON file with a second-pass extraction payload")
    parser.add_argument("--json-logs", action="store_true", help="Log JSON lines instead of console output")

    args = parser.parse_args()
    setup_logging(json_logs=args.json_logs or None)

    if args.transcript and args.refinement:
        parser.error("Provide either --transcript or --refinement, not both")

    asyncio.run(replay(
        events_path=args.events,
        transcript_path=args.transcript,
        refinement_path=args.refinement,
    ))


if __name__ == "__main__":
    main()
