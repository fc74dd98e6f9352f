# finch/__init__.py
from finch.logger import get_logger, setup_logging, teardown_logging

__version__ = "0.1.0"

__all__ = ["get_logger", "setup_logging", "teardown_logging", "__version__"]
