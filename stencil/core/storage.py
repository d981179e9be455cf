"""
registry 파일 입출력: JSON 읽기/원자적 쓰기 + advisory lock.

규칙:
- 읽기: 파일 없음 → None, 그 외 모든 읽기/파싱/구조 오류 → RegistryCorruptError
  (빈 registry 로 대체하지 않음, 손상 파일은 건드리지 않음)
- 쓰기: 직렬화를 먼저 끝낸 뒤 temp → os.replace + fsync (파일 + 디렉터리)
  직렬화 실패 시 파일시스템은 그대로, OSError 는 CopyIOError 로 변환
- fsync 실패는 경고만 (best-effort 내구성)
- registry 읽기-수정-쓰기는 filelock 으로 보호 (여러 프로세스 동시 실행 대비)
"""

import json
import logging
import os
import tempfile
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from stencil.domain.errors import CopyIOError, RegistryCorruptError, RegistryLockTimeoutError

logger = logging.getLogger(__name__)

# =============================================================================
# Read
# =============================================================================


def load_json_object(path: Path) -> dict[str, Any] | None:
    """
    JSON 객체 파일 로드.

    Returns:
        파싱된 dict (파일이 없으면 None)

    Raises:
        RegistryCorruptError: 파일이 아님, 읽기 실패, JSON 오류, 최상위가 객체가 아님
    """
    if not path.exists() and not path.is_symlink():
        return None

    def corrupt(reason: str) -> RegistryCorruptError:
        return RegistryCorruptError(message=f"Registry '{path}' is unreadable: {reason}", path=path)

    if not path.is_file():
        raise corrupt("path exists but is not a file")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise corrupt(e.strerror or str(e)) from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise corrupt(f"invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise corrupt("top-level value is not an object")
    return data


# =============================================================================
# Atomic Write
# =============================================================================


def _fsync_dir(dir_path: Path) -> None:
    """rename 결과(디렉터리 엔트리)까지 디스크에 반영. 미지원 환경은 debug 로그만."""
    try:
        fd = os.open(dir_path, os.O_RDONLY | os.O_DIRECTORY)
    except (OSError, AttributeError) as e:
        logger.debug(f"Directory fsync skipped for {dir_path}: {e}")
        return
    try:
        os.fsync(fd)
    except OSError as e:
        logger.debug(f"Directory fsync failed for {dir_path}: {e}")
    finally:
        os.close(fd)


def atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    """
    JSON 원자적 쓰기.

    동작:
    - 직렬화 먼저 (TypeError 등은 파일을 만들기 전에 발생)
    - 같은 디렉터리에 temp 작성 → fsync → os.replace → 디렉터리 fsync
    - 실패 시 temp 삭제, 기존 파일은 그대로

    Args:
        path: 저장할 파일 경로
        data: JSON 직렬화할 데이터

    Raises:
        CopyIOError: 디렉터리 생성/쓰기/rename 실패 (operation="write_registry")
    """
    payload = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"

    temp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        temp_path = Path(name)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError as e:
                logger.warning(f"fsync failed for {path}: {e}. Data may not survive a power loss.")
        os.replace(temp_path, path)
        temp_path = None
    except OSError as e:
        raise CopyIOError(
            path,
            f"Failed to write registry '{path}': {e.strerror or e}",
            operation="write_registry",
            errno=e.errno,
        ) from e
    finally:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)

    _fsync_dir(path.parent)


# =============================================================================
# Registry Lock
# =============================================================================


@contextmanager
def registry_lock(lock_path: Path, timeout: float) -> Generator[None, None, None]:
    """
    registry 읽기-수정-쓰기 구간용 advisory lock.

    사용법:
        with registry_lock(root / "registry.lock", timeout=10):
            # load → modify → atomic_write_json

    Args:
        lock_path: 락 파일 경로
        timeout: 획득 대기 시간 (초)

    Raises:
        RegistryLockTimeoutError: timeout 내 획득 실패
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(lock_path), timeout=timeout)

    try:
        lock.acquire()
    except Timeout as e:
        raise RegistryLockTimeoutError(
            message=f"Failed to acquire registry lock '{lock_path}' within {timeout}s",
            lock_path=lock_path,
            timeout=timeout,
        ) from e

    try:
        yield
    finally:
        lock.release()
