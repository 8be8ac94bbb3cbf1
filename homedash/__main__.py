"""Run the Home Dashboard Server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import threading
import traceback
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from typing import Any, Final

from aiorun import run
from colorlog import ColoredFormatter

from homedash.constants import (
    CONF_API_URL,
    CONF_BIND_PORT,
    CONF_COMPANION_AUTOSTART,
    CONF_COMPANION_PATH,
    ROOT_LOGGER_NAME,
    VERBOSE_LOG_LEVEL,
)
from homedash.server import HomeDash

FORMAT_DATE: Final = "%Y-%m-%d"
FORMAT_TIME: Final = "%H:%M:%S"
FORMAT_DATETIME: Final = f"{FORMAT_DATE} {FORMAT_TIME}"
MAX_LOG_FILESIZE = 1000000 * 10  # 10 MB

LOGGER = logging.getLogger(ROOT_LOGGER_NAME)


def get_arguments():
    """Arguments handling."""
    parser = argparse.ArgumentParser(description="Home Dashboard")

    default_data_dir = os.getenv("APPDATA") if os.name == "nt" else os.path.expanduser("~")
    default_data_dir = os.path.join(default_data_dir, ".homedash")

    parser.add_argument(
        "-c",
        "--config",
        metavar="path_to_config_dir",
        default=default_data_dir,
        help="Directory that contains the Home Dashboard configuration",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("LOG_LEVEL", "info"),
        help="Provide logging level. Example --log-level debug, "
        "default=info, possible=(critical, error, warning, info, debug, verbose)",
    )
    parser.add_argument(
        "--sonos-api-url",
        help="Url of the Sonos HTTP API, overrides SONOS_API_URL and the stored setting",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        help="Port to serve the dashboard api on",
    )
    parser.add_argument(
        "--companion-path",
        help="Directory of the node-sonos-http-api checkout to launch when needed",
    )
    parser.add_argument(
        "--autostart-companion",
        action=argparse.BooleanOptionalAction,
        help="Launch the companion api server on startup when no instance is reachable",
    )
    return parser.parse_args()


def get_config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Return the config values that were given on the commandline."""
    options = {
        CONF_API_URL: args.sonos_api_url,
        CONF_BIND_PORT: args.port,
        CONF_COMPANION_PATH: args.companion_path,
        CONF_COMPANION_AUTOSTART: args.autostart_companion,
    }
    return {key: value for key, value in options.items() if value is not None}


def setup_logger(data_path: str, level: str = "DEBUG"):
    """Initialize logger."""
    # define log formatter
    log_fmt = "%(asctime)s.%(msecs)03d %(levelname)s (%(threadName)s) [%(name)s] %(message)s"

    # base logging config for the root logger
    logging.basicConfig(level=logging.INFO)

    colorfmt = f"%(log_color)s{log_fmt}%(reset)s"
    logging.getLogger().handlers[0].setFormatter(
        ColoredFormatter(
            colorfmt,
            datefmt=FORMAT_DATETIME,
            reset=True,
            log_colors={
                "VERBOSE": "light_black",
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red",
            },
        )
    )

    # Capture warnings.warn(...) and friends messages in logs.
    logging.captureWarnings(True)

    # setup file handler
    log_filename = os.path.join(data_path, "homedash.log")
    file_handler = RotatingFileHandler(log_filename, maxBytes=MAX_LOG_FILESIZE, backupCount=1)
    # rotate log at each start
    with suppress(OSError):
        file_handler.doRollover()
    file_handler.setFormatter(logging.Formatter(log_fmt, datefmt=FORMAT_DATETIME))

    logger = logging.getLogger()
    logger.addHandler(file_handler)
    logging.addLevelName(VERBOSE_LOG_LEVEL, "VERBOSE")

    # apply the configured global log level to the (root) homedash logger
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(
        VERBOSE_LOG_LEVEL if level == "VERBOSE" else level
    )

    # silence some noisy loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.client").setLevel(logging.WARNING)

    sys.excepthook = lambda *args: logging.getLogger(None).exception(
        "Uncaught exception",
        exc_info=args,  # type: ignore[arg-type]
    )
    threading.excepthook = lambda args: logging.getLogger(None).exception(
        "Uncaught thread exception",
        exc_info=(  # type: ignore[arg-type]
            args.exc_type,
            args.exc_value,
            args.exc_traceback,
        ),
    )

    return logger


def _global_loop_exception_handler(_: Any, context: dict[str, Any]) -> None:
    """Handle all exception inside the core loop."""
    kwargs = {}
    if exception := context.get("exception"):
        kwargs["exc_info"] = (type(exception), exception, exception.__traceback__)

    logger = logging.getLogger(__package__)
    if source_traceback := context.get("source_traceback"):
        stack_summary = "".join(traceback.format_list(source_traceback))
        logger.error(
            "Error doing job: %s: %s",
            context["message"],
            stack_summary,
            **kwargs,  # type: ignore[arg-type]
        )
        return

    logger.error(
        "Error doing task: %s",
        context["message"],
        **kwargs,  # type: ignore[arg-type]
    )


def main() -> None:
    """Start the Home Dashboard."""
    # parse arguments
    args = get_arguments()
    data_dir = args.config
    if not os.path.isdir(data_dir):
        os.makedirs(data_dir)

    log_level = args.log_level.upper()
    dev_mode = os.environ.get("PYTHONDEVMODE", "0") == "1"

    # setup logger
    logger = setup_logger(data_dir, log_level)
    homedash = HomeDash(data_dir, overrides=get_config_overrides(args))

    def on_shutdown(loop) -> None:
        logger.info("shutdown requested!")
        loop.run_until_complete(homedash.stop())

    async def start_homedash() -> None:
        loop = asyncio.get_running_loop()
        if dev_mode or log_level == "DEBUG":
            loop.set_debug(True)
        loop.set_exception_handler(_global_loop_exception_handler)
        await homedash.start()

    run(
        start_homedash(),
        shutdown_callback=on_shutdown,
    )


if __name__ == "__main__":
    main()
