"""
FastAPI credential broker server for the realtime voice session engine.

The engine never holds the standard OpenAI API key. Instead it asks this
server for a short-lived credential: GET /session creates an ephemeral
Realtime session upstream and returns the upstream JSON unchanged, so the
client can read client_secret.value and client_secret.expires_at.
"""

import argparse
import os
from pathlib import Path

import dotenv
import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from realtime_session import __version__
from realtime_session.config.logging_config import configure_logging
from realtime_session.engine.errors import CredentialUnavailable
from realtime_session.services.credential_broker import OpenAICredentialBroker

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

# Configure logging
logger = configure_logging()

# Get configuration from environment variables
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")

app = FastAPI(
    title="Realtime Session Broker",
    description="Issues short-lived OpenAI Realtime session credentials",
    version=__version__,
)


@app.get("/session")
def create_session():
    """Create an ephemeral Realtime session.

    Runs in the FastAPI threadpool; the upstream call blocks.

    Returns:
        The OpenAI sessions response, or a 500 error body when the upstream
        call fails or the API key is not configured.
    """
    broker = OpenAICredentialBroker()
    try:
        return broker.create_session()
    except CredentialUnavailable:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to create ephemeral token"},
        )


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status."""
    return {
        "status": "healthy",
        "openai_api_key_configured": bool(os.getenv("OPENAI_API_KEY")),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API."""
    return {
        "name": "Realtime Session Broker",
        "description": "Issues short-lived OpenAI Realtime session credentials",
        "version": __version__,
        "endpoints": {
            "/session": "Create an ephemeral Realtime session credential",
            "/health": "Health check endpoint",
        },
    }


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Start the Realtime Session Broker server")
    parser.add_argument(
        "--port",
        type=int,
        default=PORT,
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=HOST,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Entry point for the realtime-broker command."""
    args = parse_args(argv)

    if not os.getenv("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY environment variable not set; /session will fail")

    logger.info(f"Starting broker on http://{args.host}:{args.port}")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
    )


if __name__ == "__main__":
    main()
