import logging
import sys

from b2b_commerce.config import settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger. The shared "b2b_commerce" parent logger gets a
    single stdout handler the first time any module asks for one.
    """
    root = logging.getLogger("b2b_commerce")
    if not root.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(h)
        root.setLevel(settings.LOG_LEVEL.upper())
    if not name.startswith("b2b_commerce"):
        name = f"b2b_commerce.{name}"
    return logging.getLogger(name)
