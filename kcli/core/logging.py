import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: str = "WARNING") -> None:
    """Configure root logging on stderr so stdout stays free for tail output."""
    lvl = getattr(logging, str(level).upper(), logging.WARNING)
    logging.basicConfig(level=lvl, format=LOG_FORMAT, stream=sys.stderr, force=True)
    # kafka-python is chatty at INFO (connection churn per consumer)
    if lvl > logging.DEBUG:
        logging.getLogger("kafka").setLevel(max(lvl, logging.WARNING))
