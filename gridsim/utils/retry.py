#!filepath: gridsim/utils/retry.py
import random
import time
from typing import Callable, Tuple, Type

from gridsim import logs


class Retry:
    """
    同步重试工具，支持指数退避、日志记录和 jitter。

    数据源 fetch 边界使用；max_attempts=1 等价于不重试。
    """

    @staticmethod
    def run(
        func: Callable,
        *args,
        exceptions: Tuple[Type[Exception], ...] = (Exception,),
        max_attempts: int = 3,
        delay: float = 1.0,
        backoff: float = 2.0,
        jitter: bool = True,
        **kwargs,
    ):
        attempt = 1
        while attempt <= max_attempts:

            try:
                return func(*args, **kwargs)

            except exceptions as e:
                if attempt >= max_attempts:
                    logs.debug(f"[Retry] {getattr(func, '__name__', func)} failed after {attempt} attempts")
                    raise

                wait = delay * (backoff ** (attempt - 1))
                if jitter:
                    wait = wait * random.uniform(0.8, 1.2)

                logs.warning(
                    f"[Retry] attempt {attempt}/{max_attempts} failed: {e}. "
                    f"retrying in {wait:.2f}s"
                )
                time.sleep(wait)

                attempt += 1
