import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the service process.

    Call once from the entry point, before the app starts serving.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    # SDK request logs are noisy at INFO
    for name in ("httpx", "httpcore", "anthropic", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)
