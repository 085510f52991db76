import logging
from logging.handlers import RotatingFileHandler
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# One logger per concern; all of them propagate to the root handlers
NAMED_LOGGERS = (
    "deploy_logger",
    "ssh_logger",
    "database_logger",
    "proxy_logger",
    "maintenance",
)


def setup_logging(log_dir=None):
    # Absolute path; LOG_DIR overrides the default static/ folder
    log_dir = log_dir or os.getenv("LOG_DIR") or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), "static"
    )
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "app.log")

    log_formatter = logging.Formatter(LOG_FORMAT)

    # --- Root logger ---
    app_logger = logging.getLogger()
    app_logger.setLevel(logging.INFO)

    # Console handler (avoid adding twice)
    if not any(
        type(h) is logging.StreamHandler for h in app_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(log_formatter)
        app_logger.addHandler(console_handler)

    # File handler (avoid adding twice)
    if not any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == log_file
        for h in app_logger.handlers
    ):
        file_handler = RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setFormatter(log_formatter)
        app_logger.addHandler(file_handler)

    for name in NAMED_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    return log_file
