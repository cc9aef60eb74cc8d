#!filepath: gridsim/utils/filesystem.py
import os
import shutil
from pathlib import Path
from typing import List, Optional

from gridsim import logs


class FileSystem:
    """
    缓存目录的文件工具
    - 自动创建目录
    - 原子写入（临时文件 → replace）
    - 删除文件/目录
    - 扫描目录
    """

    @staticmethod
    def ensure_dir(path: str | Path) -> Path:
        p = Path(path)
        if not p.exists():
            p.mkdir(parents=True, exist_ok=True)
            logs.debug(f"[FS] mkdir: {p}")
        return p

    @staticmethod
    def safe_write(path: str | Path, data: bytes) -> None:
        """
        原子写入，崩溃时不会留下半个文件：
            1) 写 tmp
            2) replace → 正式文件
        """
        path = Path(path)
        FileSystem.ensure_dir(path.parent)

        tmp_path = path.with_suffix(path.suffix + ".tmp")

        with open(tmp_path, "wb") as f:
            f.write(data)

        os.replace(tmp_path, path)
        logs.debug(f"[FS] atomic write: {path}")

    @staticmethod
    def read_bytes(path: str | Path) -> Optional[bytes]:
        p = Path(path)
        if not p.exists():
            return None
        return p.read_bytes()

    @staticmethod
    def remove(path: str | Path) -> None:
        p = Path(path)

        if not p.exists():
            return

        if p.is_dir():
            shutil.rmtree(p)
            logs.debug(f"[FS] rmtree: {p}")
        else:
            p.unlink()
            logs.debug(f"[FS] unlink: {p}")

    @staticmethod
    def scan_dir(path: str | Path, suffix: Optional[str] = None) -> List[Path]:
        """
        目录下所有文件（可按后缀过滤），按文件名排序
        """
        p = Path(path)
        if not p.exists():
            return []

        files = []
        for f in p.iterdir():
            if f.is_file():
                if suffix is None or f.suffix == suffix:
                    files.append(f)

        return sorted(files)

    @staticmethod
    def clean_temp_files(path: str | Path, suffix=".tmp") -> int:
        """
        删除中断写入残留的 *.tmp，返回删除数量
        """
        p = Path(path)
        count = 0

        if not p.exists():
            return 0

        for f in p.rglob(f"*{suffix}"):
            f.unlink()
            count += 1

        return count
