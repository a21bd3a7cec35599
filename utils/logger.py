"""Logfire setup shared by the API and the client."""

import os
import logging

import logfire

SERVICE_NAME = "mercury"

_configured = False


def configure_logging(service_name: str = SERVICE_NAME) -> None:
    """Configure logfire once per process.

    Records are only shipped when `LOGFIRE_WRITE_TOKEN` is set; otherwise
    they stay on the console.
    """
    global _configured
    if _configured:
        return

    logfire.configure(
        token=os.getenv("LOGFIRE_WRITE_TOKEN"),
        send_to_logfire="if-token-present",
        service_name=service_name,
        console=logfire.ConsoleOptions(min_log_level=os.getenv("LOG_LEVEL", "info").lower()),
    )
    # Route stdlib logging (uvicorn, the rate limiter) through logfire as well
    logging.basicConfig(handlers=[logfire.LogfireLoggingHandler()], level=logging.INFO)
    _configured = True


def instrument_libraries() -> None:
    """Instrument the Mongo driver and outgoing httpx calls when tracing is enabled."""
    if not os.getenv("LOGFIRE_WRITE_TOKEN"):
        return
    logfire.instrument_httpx()
    logfire.instrument_pymongo()


def instrument_app(app) -> None:
    if os.getenv("LOGFIRE_WRITE_TOKEN"):
        logfire.instrument_fastapi(app)
        instrument_libraries()
