"""Main entry point for the conversation relay."""

import os

import uvicorn
from dotenv import load_dotenv

from relay.api import create_fastapi_app
from relay.api.routes import control
from relay.config import DEFAULT_LOG_PATH, PROJECT_ROOT
from relay.logging_config import setup_logging
from sim import Sim


def main():
    """Run the application."""
    load_dotenv(PROJECT_ROOT / ".env")

    setup_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=DEFAULT_LOG_PATH,
        console_only=os.getenv("LOG_CONSOLE_ONLY", "").lower() in ("1", "true", "yes"),
    )

    # Get configuration from environment
    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))
    api_url = f"http://{api_host}:{api_port}"

    # Set SIM instance for control router
    control.set_sim_instance(Sim(api_url=api_url))

    app = create_fastapi_app()

    uvicorn.run(
        app,
        host=api_host,
        port=api_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
