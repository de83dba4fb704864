"""
Tradedesk - Main application entry point.

Simulated retail trading engine: wallets, orders priced from live quotes,
position closing and portfolio valuation behind a FastAPI service.
"""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from tradedesk.config.logging import get_logger, setup_logging
from tradedesk.config.settings import get_settings


def initialize_application() -> None:
    """Initialize logging and the data directory."""
    settings = get_settings()

    # Setup logging with configured settings
    setup_logging(
        level=settings.log_level,
        format_type=settings.log_format,
        file_enabled=settings.log_file_enabled,
        file_path=settings.log_file_path,
        max_file_size=settings.log_max_file_size,
        backup_count=settings.log_backup_count,
        audit_file_path=settings.audit_log_path,
    )

    Path(settings.data_directory).mkdir(parents=True, exist_ok=True)

    logger = get_logger(__name__)
    logger.info(
        "Application initialized successfully",
        environment=settings.environment,
        debug=settings.debug,
        data_dir=settings.data_directory,
    )


def main() -> None:
    """Main application entry point."""
    initialize_application()

    logger = get_logger(__name__)
    settings = get_settings()
    logger.info(
        "Starting Tradedesk API",
        host=settings.endpoint_host,
        port=settings.endpoint_port,
    )

    try:
        uvicorn.run(
            "tradedesk.webapi.app:create_app",
            factory=True,
            host=settings.endpoint_host,
            port=settings.endpoint_port,
            reload=settings.api_reload,
            log_level=settings.api_log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")


if __name__ == "__main__":
    main()
