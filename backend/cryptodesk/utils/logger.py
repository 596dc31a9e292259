import logging
import sys
from datetime import datetime

_HANDLER_NAME = "cryptodesk-console"


class DotMsFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        ct = datetime.fromtimestamp(record.created)
        s = ct.strftime(datefmt or "%Y-%m-%d %H:%M:%S")
        return f"{s}.{int(record.msecs):03d}"


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Attach a console handler to the ``cryptodesk`` logger once."""
    logger = logging.getLogger("cryptodesk")
    logger.setLevel(level)
    if any(handler.get_name() == _HANDLER_NAME for handler in logger.handlers):
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(DotMsFormatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    return logger
