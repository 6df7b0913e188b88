import logging

from core.config import settings


def get_logger(name: str):
    """
    Return a named logger writing to the console.

    Handlers are attached once per name, so repeated calls from module
    import time are cheap and do not duplicate output.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(settings.LOG_LEVEL.upper())

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
