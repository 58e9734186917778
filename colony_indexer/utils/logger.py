import logging
import time
from contextlib import contextmanager

# Set up Python logging
logger = logging.getLogger("colony-indexer")
logger.setLevel(logging.INFO)
logger.propagate = False

# Configure logging handler/format only if no handlers present
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter(
        fmt="%(asctime)s - [%(levelname)s] - %(name)s - %(funcName)s() - %(message)s"
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def set_log_level(level: str) -> None:
    """Adjust the indexer logger level from a name like 'DEBUG'."""
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))


@contextmanager
def timed_block(label: str):
    """Log how long the wrapped block took, even when it raises."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start_time
        logger.info("[Timer] %s took %.2fs", label, elapsed)
