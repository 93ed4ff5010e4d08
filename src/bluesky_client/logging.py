import logging

logger = logging.getLogger("bluesky_client")
logger.addHandler(logging.NullHandler())


def enable_debug() -> None:
    """Enable debug logging for the Bluesky client."""
    logger.setLevel(logging.DEBUG)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("[bluesky_client] %(levelname)s: %(message)s")
    )
    logger.addHandler(handler)
