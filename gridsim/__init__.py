#!filepath: gridsim/__init__.py

from .utils.logger import Logging, logs
from .utils.retry import Retry
from .utils.filesystem import FileSystem
from .utils.datetime_utils import DateTimeUtils
from .config.app_config import AppConfig

datetime_utils = DateTimeUtils

# alias 简化调用
retry = Retry
fs = FileSystem

__version__ = "0.1.0"

__all__ = [
    "logs", "Logging",
    "retry",
    "fs",
    "AppConfig",
    "datetime_utils",
    "__version__",
]
