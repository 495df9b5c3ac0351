import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from shardprint.config import config


def setup_error_logger() -> logging.Logger:
    """
    Configure the package-wide logger for shardprint.
    Writes WARN+ to stderr, and ERROR+ to a rotating file when
    `config.enable_logging` is set.
    """
    logger = logging.getLogger("shardprint")
    if logger.handlers:
        return logger

    logger.setLevel(logging.WARNING)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.WARNING)
    sh.setFormatter(
        logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logger.addHandler(sh)

    if config.enable_logging:
        errors_dir = Path(config.logs_dir)
        errors_dir.mkdir(parents=True, exist_ok=True)

        fh = RotatingFileHandler(
            errors_dir / "shardprint_errors.log",
            maxBytes=5_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setLevel(logging.ERROR)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s\t%(levelname)s\t%(name)s\t%(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(fh)

    logger.propagate = False
    setup_test_logger()
    return logger


def setup_test_logger() -> logging.Logger:
    """
    Configure the `shardprint.test` logger that receives rendered tables
    when `output_to_test` is set: INFO+ to stdout, message text only.
    """
    logger = logging.getLogger("shardprint.test")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(logging.INFO)
    sh.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(sh)
    logger.propagate = False
    return logger


def get_error_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"shardprint.{name}")
