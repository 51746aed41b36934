import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO"):
    """Set up the root handler once and apply the configured level to our loggers."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("diagnexus").setLevel(level.upper())
    # boto's own retry chatter drowns out ours at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
