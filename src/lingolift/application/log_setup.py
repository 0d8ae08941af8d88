import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def verbosity_to_level(verbose: int) -> int:
    if verbose <= 0:
        return logging.WARNING
    if verbose == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logging(log_dir: Path, verbose: int = 1) -> Path:
    """
    Configure the root logger: stderr at the requested verbosity, and a
    DEBUG-level file in `log_dir`. Returns the log file path.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "lingolift.log"

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_lingolift", False):
            root.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(verbosity_to_level(verbose))
    console.setFormatter(logging.Formatter(LOG_FORMAT))

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    for handler in (console, file_handler):
        handler._lingolift = True
        root.addHandler(handler)
    root.setLevel(logging.DEBUG)

    return log_path
