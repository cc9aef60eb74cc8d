#!filepath: gridsim/utils/logger.py
import os
import sys
from functools import wraps
from time import perf_counter
from typing import Callable, Tuple, Type

from loguru import logger

# Logger 初始化只执行一次
_LOGGER_CONFIGURED = False


class Logging:
    """
    项目日志模块（loguru）
    ---------------------------------------
    - 按日期切割
    - 日志保留周期
    - 函数级日志装饰器 catch()
    ---------------------------------------
    """

    def __init__(
        self,
        log_dir: str = "logs",
        rotation: str = "1 day",
        retention: str = "30 days",
        log_level: str = "INFO",
    ):
        self.log_dir = log_dir
        self.rotation = rotation
        self.retention = retention
        self.level = log_level

        os.makedirs(self.log_dir, exist_ok=True)
        self._configure()

    def _configure(self) -> None:
        """
        配置全局 logger
        """
        global _LOGGER_CONFIGURED

        logger.remove()

        logger.add(
            sink=f"{self.log_dir}/{{time:YYYY-MM-DD}}.log",
            rotation=self.rotation,
            retention=self.retention,
            level=self.level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

        if not _LOGGER_CONFIGURED:
            logger.info("\n-----------Logger initialized successfully.-----------")
        _LOGGER_CONFIGURED = True

    # ----------- 日志方法 -----------
    def debug(self, msg: str, *args, **kwargs):
        logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        print(msg, file=sys.stderr)
        logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        print(msg, file=sys.stderr)
        logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        logger.exception(msg, *args, **kwargs)

    # ---------- 日志装饰器 ----------
    def catch(
        self,
        msg: str = "Exception occurred",
        expected: Tuple[Type[BaseException], ...] = (),
        log_time: bool = True,
    ) -> Callable:
        """
        记录异常并继续抛出。

        expected 中的异常（如取消、输入错误）只记 info，不记 ERROR。
        """

        def decorator(func: Callable):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start = perf_counter()

                try:
                    result = func(*args, **kwargs)
                except expected as e:
                    logger.info(f"[CALL] {func.__name__}: {type(e).__name__}: {e}")
                    raise
                except Exception:
                    logger.exception(f"[ERROR] {func.__name__}: {msg}")
                    raise

                if log_time:
                    cost = perf_counter() - start
                    logger.info(f"[TIME] {func.__name__} took {cost:.4f}s")

                return result

            return wrapper

        return decorator


# 默认全局 logs（可被 init_logging 替换）
logs = Logging()


def init_logging(log_dir: str, rotation: str, retention: str, level: str) -> Logging:
    """按 LogConfig 重新配置全局 sink，返回同一个 logs 实例。"""
    logs.log_dir = log_dir
    logs.rotation = rotation
    logs.retention = retention
    logs.level = level
    os.makedirs(log_dir, exist_ok=True)
    logs._configure()
    return logs
