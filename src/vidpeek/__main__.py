"""
vidpeek Package Main Entry Point

Runs the CLI when the package is executed with ``python -m vidpeek``.
"""

import logging
import sys

from vidpeek.cli.common.error_handler import handle_cli_error
from vidpeek.cli.typer_app import app
from vidpeek.shared.constants import CLIDefaults

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        logger.info("Command interrupted by user")
        sys.exit(CLIDefaults.EXIT_INTERRUPTED)
    except SystemExit:
        raise
    except Exception as e:  # noqa: BLE001
        sys.exit(handle_cli_error(e, "vidpeek-main"))
