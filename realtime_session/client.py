"""
Command line client running one realtime voice session.

Fetches a credential from the broker server, talks to the agent through the
default microphone and speaker for a fixed duration, then stops the session
and stores the recordings in a local directory (or a GCS bucket when
--gcs-bucket is given).

Usage:
    realtime-session --duration 30 --topology dual
"""

import argparse
import asyncio
import os
import uuid
from pathlib import Path

import dotenv

from realtime_session.config.logging_config import configure_logging
from realtime_session.engine.controller import SessionController
from realtime_session.engine.errors import SessionStartFailed
from realtime_session.models.conversation import ConversationLog
from realtime_session.models.session import CaptureTopology, SessionConfig
from realtime_session.services.credential_broker import HttpCredentialBroker
from realtime_session.services.recording_sink import DirectoryRecordingSink

DEFAULT_INSTRUCTIONS = "You are a friendly assistant. Keep your answers short."

logger = configure_logging()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one OpenAI Realtime voice session")
    parser.add_argument("--duration", type=float, default=30.0,
                        help="Session length in seconds (default: 30)")
    parser.add_argument("--topology", choices=[t.value for t in CaptureTopology],
                        default=CaptureTopology.SINGLE.value,
                        help="Which streams to record (default: single)")
    parser.add_argument("--broker-url", default=os.getenv("CREDENTIAL_BROKER_URL"),
                        help="Broker /session URL (default: CREDENTIAL_BROKER_URL env var)")
    parser.add_argument("--recordings-dir", default=os.getenv("RECORDINGS_DIR", "recordings"),
                        help="Directory for recordings (default: recordings)")
    parser.add_argument("--gcs-bucket", default=None,
                        help="Upload recordings to this GCS bucket instead")
    parser.add_argument("--instructions", default=DEFAULT_INSTRUCTIONS,
                        help="Instructions given to the agent")
    parser.add_argument("--greeting", default=None,
                        help="Message sent on behalf of the user once connected")
    parser.add_argument("--voice", default=None, help="Agent voice")
    parser.add_argument("--no-playback", action="store_true",
                        help="Do not play the agent's audio")
    return parser.parse_args(argv)


def build_sink(args, session_id: str):
    if args.gcs_bucket:
        from realtime_session.services.gcs_sink import GCSRecordingSink

        return GCSRecordingSink(bucket_name=args.gcs_bucket, session_id=session_id)
    return DirectoryRecordingSink(args.recordings_dir, session_id=session_id)


def build_config(args) -> SessionConfig:
    options = {
        "instructions": args.instructions,
        "capture_topology": CaptureTopology(args.topology),
        "greeting_prompt": args.greeting,
        "playback": not args.no_playback,
    }
    if args.voice:
        options["voice"] = args.voice
    return SessionConfig(**options)


async def run_session(args) -> int:
    session_id = uuid.uuid4().hex[:12]
    sink = build_sink(args, session_id)
    conversation = ConversationLog()
    controller = SessionController(
        HttpCredentialBroker(args.broker_url),
        sink=sink,
        conversation_log=conversation,
    )
    controller.speaking_indicator.subscribe(
        lambda speaking: logger.info("Agent speaking" if speaking else "Agent silent")
    )

    try:
        await controller.start(build_config(args))
    except SessionStartFailed as e:
        logger.error(f"Could not start session: {e}")
        return 1

    logger.info(f"Session {session_id} running for {args.duration:.0f} seconds")
    try:
        await asyncio.sleep(args.duration)
    finally:
        artifacts = await controller.stop()
    submissions = controller.submissions

    for submission in submissions:
        async for percent in submission.progress:
            logger.debug(f"{submission.artifact.label}: {percent:.0f}%")
    await sink.wait_closed()

    for submission in submissions:
        if submission.error is not None:
            logger.error(str(submission.error))
        else:
            logger.info(
                f"{submission.artifact.label}: {submission.artifact.duration:.1f}s "
                f"-> {submission.durable_reference.result()}"
            )
    for line in conversation.transcript():
        logger.info(line)
    logger.info(f"Session {session_id} finished with {len(artifacts)} recording(s)")
    return 0


def main(argv=None):
    """Entry point for the realtime-session command."""
    env_path = Path(".") / ".env"
    if env_path.exists():
        dotenv.load_dotenv(env_path)
    args = parse_args(argv)
    try:
        raise SystemExit(asyncio.run(run_session(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
