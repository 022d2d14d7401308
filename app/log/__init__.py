from .log import InterceptHandler, logger, setup_logging

__all__ = ["InterceptHandler", "logger", "setup_logging"]
