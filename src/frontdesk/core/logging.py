import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

NOISY_LOGGERS = [
    "uvicorn.access",
    "uvicorn.error",
    "livekit",
    "livekit.agents",
    "livekit.plugins",
    "asyncio",
    "httpx",
    "openai",
]


def get_plain_logger(name: str, level=logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    if not logger.hasHandlers():
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


def configure_logging(level: str = "INFO") -> None:
    """Root logging setup for the API process; silences chatty third-party loggers"""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.ERROR)
