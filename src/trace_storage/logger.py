import logging

from trace_storage.config import settings


def setup_logger(level: str | None = None):
    # Create logger for the whole package, module loggers propagate to it
    logger = logging.getLogger('trace_storage')
    logger.setLevel(level or settings.LOG_LEVEL)

    # Adding local handler
    if not logger.handlers:
        console_handler = logging.StreamHandler()

        # Create formatter
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(formatter)

        # Add handler to logger
        logger.addHandler(console_handler)

    return logger
