import logging
import sys

_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def setup_logging(level: str | int = logging.INFO) -> None:
    """
    Install a single stderr handler on the root logger.

    Call once at startup; repeated calls replace the handler instead of
    stacking duplicates.
    """
    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
