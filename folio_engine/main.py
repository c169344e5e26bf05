"""Main entry point for Folio Engine."""

import logging
import sys
from datetime import datetime
from pathlib import Path

import uvicorn


def setup_logging(debug: bool = False, data_dir: Path = Path("data")):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]

    file_handler = None
    log_file = None

    # Add file handler if debug mode is enabled
    if debug:
        log_dir = Path(data_dir) / "debug_logs" / "server"
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"server_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    # Root stays at INFO so third-party libraries are not verbose
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    folio_logger = logging.getLogger('folio_engine')
    folio_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('multipart').setLevel(logging.WARNING)

    # Image fetches are too frequent to be worth an access log line each
    class ImageAccessFilter(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:
            return "/api/images/" not in record.getMessage()

    logging.getLogger("uvicorn.access").addFilter(ImageAccessFilter())

    startup_logger = logging.getLogger(__name__)
    if debug:
        startup_logger.info(f"[STARTUP] Server log file: {log_file}")
    startup_logger.info(f"[STARTUP] Logging configured: level={level}, folio_engine logger level={folio_logger.level}")

    return file_handler, log_file


def main():
    """Run the FastAPI server."""
    from folio_engine.config import ConfigLoader, SystemConfig
    try:
        loader = ConfigLoader()
        system_config = loader.load_system_config()
    except Exception as e:
        # Logger isn't configured yet
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        logging.getLogger(__name__).warning(f"[STARTUP WARNING] Could not load system config: {e}, using defaults")
        system_config = SystemConfig()

    setup_logging(debug=system_config.debug, data_dir=system_config.paths.data)

    logger = logging.getLogger(__name__)
    logger.info(f"Starting Folio Engine server (debug mode: {system_config.debug})...")
    logger.info(f"Server will listen on {system_config.api_host}:{system_config.api_port}")

    uvicorn.run(
        "folio_engine.api.app:app",
        host=system_config.api_host,
        port=system_config.api_port,
        reload=False,
        log_level="info",
        log_config=None,  # keep our basicConfig
    )


if __name__ == "__main__":
    main()
