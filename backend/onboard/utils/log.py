"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)`` and pass structured
fields via ``extra=``; this only wires the root handler once.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level.upper())
        return
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
