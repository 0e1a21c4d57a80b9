"""文件操作：原子写入、咨询锁、备份与恢复"""

import logging
import os
import re
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from filelock import FileLock, Timeout

from .errors import BackupRestoreFailed, LockTimeout

logger = logging.getLogger(__name__)

BACKUP_SUFFIX_RE = re.compile(r"\.backup\.\d+$")

PathLike = Union[str, Path]


def now_ms() -> int:
    return int(time.time() * 1000)


def ensure_private_dir(path: PathLike) -> Path:
    """确保目录存在（0o700）"""
    path = Path(path)
    if not path.exists():
        path.mkdir(parents=True, exist_ok=True)
        try:
            path.chmod(0o700)
        except OSError:
            pass
    return path


def read_text(path: PathLike) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def atomic_write_text(path: PathLike, text: str, mode: int = 0o600) -> None:
    """Write ``text`` to ``path`` via temp file + rename.

    The temp file lives in the target directory so ``os.replace`` stays on a
    single filesystem; readers see either the old or the complete new content.
    """
    path = Path(path)
    ensure_private_dir(path.parent)

    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        if hasattr(os, "fchmod"):
            os.fchmod(fd, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

    try:
        path.chmod(mode)
    except OSError:
        pass


@contextmanager
def file_lock(path: PathLike, timeout: float = 10.0, poll_interval: float = 0.05) -> Iterator[Path]:
    """Exclusive advisory lock on ``path``.

    The lock is an OS-level lock on ``<path>.lock`` (filelock). It is held
    until release, whatever its age, and the OS drops it if the holder dies.
    """
    path = Path(path)
    ensure_private_dir(path.parent)
    lock = FileLock(str(path.with_name(path.name + ".lock")), timeout=timeout)
    try:
        lock.acquire(poll_interval=poll_interval)
    except Timeout as e:
        raise LockTimeout(f"Could not acquire lock on {path}, another ccman process may be running") from e

    try:
        yield path
    finally:
        lock.release()


def backup_path_for(path: PathLike, timestamp: Optional[int] = None) -> Path:
    path = Path(path)
    return path.with_name(f"{path.name}.backup.{timestamp if timestamp is not None else now_ms()}")


def create_backup(path: PathLike) -> Path:
    """复制 ``path`` 为 ``<path>.backup.<unix-ms>``"""
    path = Path(path)
    backup = backup_path_for(path)
    # 同一毫秒内多次备份时避免覆盖
    while backup.exists():
        time.sleep(0.001)
        backup = backup_path_for(path)
    shutil.copy2(path, backup)
    try:
        backup.chmod(0o600)
    except OSError:
        pass
    logger.info("Backed up %s -> %s", path, backup.name)
    return backup


def original_path(backup: PathLike) -> Path:
    backup = Path(backup)
    if not BACKUP_SUFFIX_RE.search(backup.name):
        raise ValueError(f"Not a backup file: {backup}")
    return backup.with_name(BACKUP_SUFFIX_RE.sub("", backup.name))


def restore_backups(backups: Sequence[PathLike]) -> List[BackupRestoreFailed]:
    """Restore every backup, best-effort.

    A failure on one backup is logged and collected; the rest are still
    attempted.
    """
    failures = []
    for backup in backups:
        try:
            target = original_path(backup)
            staging = target.with_name(f".{target.name}.restore.tmp")
            shutil.copy2(backup, staging)
            os.replace(staging, target)
            logger.info("Restored %s from %s", target, Path(backup).name)
        except (OSError, ValueError) as e:
            failure = BackupRestoreFailed(backup, e)
            logger.error("%s", failure)
            failures.append(failure)
    return failures


def list_backups(path: PathLike) -> List[Path]:
    """按时间从新到旧列出 ``path`` 的备份"""
    path = Path(path)
    if not path.parent.exists():
        return []
    backups = [
        p for p in path.parent.iterdir()
        if p.name.startswith(path.name + ".backup.") and BACKUP_SUFFIX_RE.search(p.name)
    ]
    return sorted(backups, key=lambda p: int(p.name.rsplit(".", 1)[1]), reverse=True)


def prune_backups(path: PathLike, keep: int = 3) -> List[Path]:
    removed = []
    for backup in list_backups(path)[keep:]:
        backup.unlink()
        removed.append(backup)
    return removed
