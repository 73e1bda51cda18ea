import logging
import sys
from typing import Optional


def setup_logging(level_name: Optional[str] = None):
    """Route the root logger to stdout and tune package/server levels."""
    if level_name is None:
        from .config.settings import get_settings
        level_name = get_settings().log_level
    level = getattr(logging, level_name.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(logging.Formatter('%(asctime)s | %(levelname)s | %(name)s | %(message)s'))
    root.addHandler(sh)

    logging.captureWarnings(True)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    for name in (
        "k2_storefront",            # whole package
        "k2_storefront.engine",     # scenario compilation + guardrails
        "k2_storefront.checkout",   # session lifecycle
        "k2_storefront.demo",       # mirrored demo log events
        "uvicorn.error",
    ):
        logging.getLogger(name).setLevel(level)
