"""
Data schemas for stencil.

규칙:
- registry에는 storage_path를 루트 기준 상대 경로로 저장 (루트 이동 허용)
- created_at: ISO-8601 UTC 문자열
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# =============================================================================
# Copy Options
# =============================================================================


class SymlinkPolicy(str, Enum):
    """심볼릭 링크 처리 정책."""

    COPY = "copy"      # 링크 자체를 재생성
    FOLLOW = "follow"  # 대상 내용 복사 (순환 감지 시 실패)
    SKIP = "skip"      # 건너뜀


@dataclass
class CopyOptions:
    """Tree Copier 옵션."""

    symlinks: SymlinkPolicy = SymlinkPolicy.COPY
    keep_empty_dirs: bool = True  # False: 파일이 하나라도 복사될 때만 디렉터리 생성
    overwrite: bool = False
    preserve_mode: bool = True  # 실행 비트 등 권한 보존


@dataclass
class CopyStats:
    """복사 결과 통계."""

    files_copied: int = 0
    bytes_copied: int = 0
    dirs_created: int = 0
    links_copied: int = 0
    entries_skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "files_copied": self.files_copied,
            "bytes_copied": self.bytes_copied,
            "dirs_created": self.dirs_created,
            "links_copied": self.links_copied,
            "entries_skipped": self.entries_skipped,
        }


# =============================================================================
# Template
# =============================================================================


@dataclass
class Template:
    """
    registry 항목.

    storage_path는 메모리에서는 절대 경로, 파일에서는 루트 기준 상대 경로.
    """

    name: str
    storage_path: Path
    created_at: str
    source_path: str
    description: str | None = None
    patterns: list[str] = field(default_factory=list)

    def to_dict(self, root: Path) -> dict[str, Any]:
        """registry 직렬화용 (storage_path → 루트 기준 상대 경로)."""
        try:
            storage = self.storage_path.relative_to(root).as_posix()
        except ValueError:
            storage = str(self.storage_path)
        return {
            "name": self.name,
            "storage_path": storage,
            "created_at": self.created_at,
            "source_path": self.source_path,
            "description": self.description,
            "patterns": list(self.patterns),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], root: Path) -> "Template":
        return cls(
            name=data["name"],
            storage_path=root / data["storage_path"],
            created_at=data["created_at"],
            source_path=data["source_path"],
            description=data.get("description"),
            patterns=list(data.get("patterns") or []),
        )


@dataclass
class RegistryReport:
    """
    registry ↔ 저장소 정합성 점검 결과.

    missing_storage: registry에는 있지만 저장 디렉터리가 없는 템플릿 이름
    orphaned_storage: registry 항목이 없는 저장 디렉터리
    leftovers: 중단된 캡처/삭제가 남긴 .staging/.trash 하위 디렉터리
    """

    missing_storage: list[str] = field(default_factory=list)
    orphaned_storage: list[Path] = field(default_factory=list)
    leftovers: list[Path] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not (self.missing_storage or self.orphaned_storage or self.leftovers)
