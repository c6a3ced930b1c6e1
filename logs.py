import logging
import uuid
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


class PublishLogger(logging.LoggerAdapter):
    """Tags every record of one publish attempt with its correlation id."""

    def __init__(self, logger: logging.Logger, correlation_id: Optional[str] = None, **extra):
        self.correlation_id = correlation_id or new_correlation_id()
        super().__init__(logger, {"correlation_id": self.correlation_id, **extra})

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[publish {self.correlation_id}] {msg}", kwargs


def publish_logger(name: str, correlation_id: Optional[str] = None, **extra) -> PublishLogger:
    return PublishLogger(logging.getLogger(name), correlation_id, **extra)
