"""
Run script for starting the Realtime Session Broker server.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

from realtime_session.main import main

if __name__ == "__main__":
    main()
