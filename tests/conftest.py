"""
Pytest fixtures for stencil tests.

구성:
- 저장소 루트는 항상 tmp_path 아래 (실제 ~/.config 를 건드리지 않음)
- 샘플 트리: 파일/하위 디렉터리/실행 파일/무시 대상 포함
"""

import os
import stat
from collections.abc import Callable
from pathlib import Path

import pytest

from stencil.app.config import StencilConfig
from stencil.app.service import TemplateService
from stencil.templates.registry import TemplateRegistry

# =============================================================================
# Helpers
# =============================================================================


def _write_tree(root: Path, entries: dict[str, str | bytes | None]) -> Path:
    """
    {상대경로: 내용} → 파일 트리 생성.

    내용이 None 이면 빈 디렉터리, 경로가 "/" 로 끝나도 디렉터리.
    """
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in entries.items():
        path = root / rel
        if content is None or rel.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def _snapshot(root: Path) -> dict[str, bytes | str | None]:
    """
    트리 → {상대경로: 내용} (디렉터리 None, 링크 "-> target").

    두 트리 비교용.
    """
    result: dict[str, bytes | str | None] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for d in list(dirnames):
            p = base / d
            rel = p.relative_to(root).as_posix()
            if p.is_symlink():
                result[rel] = f"-> {os.readlink(p)}"
                dirnames.remove(d)
            else:
                result[rel] = None
        for f in filenames:
            p = base / f
            rel = p.relative_to(root).as_posix()
            result[rel] = f"-> {os.readlink(p)}" if p.is_symlink() else p.read_bytes()
    return result


# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def write_tree() -> Callable[[Path, dict], Path]:
    return _write_tree


@pytest.fixture
def snapshot() -> Callable[[Path], dict]:
    return _snapshot


@pytest.fixture
def stencil_root(tmp_path: Path) -> Path:
    """테스트용 저장소 루트 (아직 생성되지 않음)."""
    return tmp_path / "stencil-home"


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """
    캡처 대상 샘플 프로젝트.

    포함:
    - README.md, src/app.py, src/pkg/__init__.py
    - run.sh (실행 권한)
    - build.log, logs/debug.log (*.log 무시 대상)
    - node_modules/x/y.txt (node_modules/** 무시 대상)
    - empty/ (빈 디렉터리)
    """
    root = _write_tree(
        tmp_path / "project",
        {
            "README.md": "# sample\n",
            "src/app.py": "print('hello')\n",
            "src/pkg/__init__.py": "",
            "run.sh": "#!/bin/sh\necho run\n",
            "build.log": "log line\n",
            "logs/debug.log": "debug\n",
            "node_modules/x/y.txt": "dependency\n",
            "empty/": None,
        },
    )
    run = root / "run.sh"
    run.chmod(run.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP)
    return root


# =============================================================================
# Registry Fixtures
# =============================================================================


@pytest.fixture
def registry(stencil_root: Path) -> TemplateRegistry:
    """TemplateRegistry 인스턴스 (짧은 락 timeout)."""
    return TemplateRegistry(stencil_root, lock_timeout=1.0)


@pytest.fixture
def service(registry: TemplateRegistry, stencil_root: Path) -> TemplateService:
    """TemplateService (default_ignore 없음)."""
    return TemplateService(registry, StencilConfig(root=stencil_root, lock_timeout=1.0))
