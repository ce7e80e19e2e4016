"""Logging setup shared by the API and the worker."""

import logging

from filebox.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure logging from settings (stderr always; optional file)."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("filebox")
    root.setLevel(level)
    root.handlers.clear()
    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root.addHandler(sh)
    if settings.log_file and str(settings.log_file).strip():
        try:
            fh = logging.FileHandler(settings.log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(fmt)
            root.addHandler(fh)
            root.info("Logging to file %s", settings.log_file)
        except OSError as e:
            root.warning("Could not open log file %s: %s", settings.log_file, e)
    else:
        root.debug("Logging to stderr only (no log_file set)")
