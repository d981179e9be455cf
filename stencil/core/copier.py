"""
Tree Copier: ignore 패턴을 적용한 재귀 디렉터리 복사.

규칙:
- 깊이 우선, 명시적 스택 (재귀 한도 없음), 엔트리는 이름순 (결정적 결과)
- 제외된 디렉터리는 하위로 내려가지 않음 (subtree pruning)
- 파일은 바이트 그대로 복사 + 권한 비트 보존
- 심볼릭 링크는 SymlinkPolicy 로 명시 (follow 시 순환 감지 → SYMLINK_LOOP)
- 비어있지 않은 대상은 overwrite 없이는 DestinationNotEmptyError
- 엔트리 하나라도 실패하면 즉시 중단 + 실패 경로 보고
- 롤백 없음: 중단 시 이미 쓴 내용은 그대로 남김 (정리는 호출자 책임)
- cancel_check: 엔트리 사이마다 확인, True 면 CopyCancelledError
"""

import logging
import os
import shutil
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath

from stencil.core.matcher import PatternMatcher
from stencil.domain.errors import (
    CopyCancelledError,
    CopyIOError,
    DestinationNotEmptyError,
    ErrorCodes,
)
from stencil.domain.schemas import CopyOptions, CopyStats, SymlinkPolicy

logger = logging.getLogger(__name__)

SkipCallback = Callable[[PurePosixPath, str], None]
ProgressCallback = Callable[[PurePosixPath], None]

# =============================================================================
# Walk
# =============================================================================


class EntryKind(str, Enum):
    """walk 결과 엔트리 종류."""

    DIRECTORY = "directory"
    FILE = "file"
    SYMLINK = "symlink"  # SymlinkPolicy.COPY 일 때만 나옴


@dataclass(frozen=True)
class WalkEntry:
    """walk_tree()가 내보내는 엔트리."""

    path: Path
    rel_path: PurePosixPath
    kind: EntryKind
    is_dir: bool = False  # SYMLINK: 링크 대상이 디렉터리인지


def _identity(st: os.stat_result) -> tuple[int, int]:
    return (st.st_dev, st.st_ino)


def walk_tree(
    root: Path,
    matcher: PatternMatcher | None = None,
    symlinks: SymlinkPolicy = SymlinkPolicy.COPY,
    on_skip: SkipCallback | None = None,
) -> Iterator[WalkEntry]:
    """
    root 하위를 깊이 우선으로 순회.

    - 제외 패턴에 걸린 디렉터리는 내려가지 않음
    - FIFO/소켓/디바이스 등은 건너뜀 (on_skip 호출)
    - follow 정책에서 조상 디렉터리를 가리키는 링크는 CopyIOError(SYMLINK_LOOP)

    Args:
        root: 순회 루트 (디렉터리)
        matcher: 제외 패턴 (None 이면 전부 포함)
        symlinks: 심볼릭 링크 정책
        on_skip: 건너뛴 엔트리 콜백 (rel_path, reason)

    Yields:
        WalkEntry (루트 자신은 제외)

    Raises:
        CopyIOError: 디렉터리 읽기 실패, 링크 순환, 깨진 링크(follow)
    """
    follow = symlinks is SymlinkPolicy.FOLLOW
    root_ids: tuple[tuple[int, int], ...] = ()
    if follow:
        root_ids = (_identity(os.stat(root)),)

    def skip(rel: PurePosixPath, reason: str) -> None:
        logger.debug(f"Skipping {rel.as_posix()} ({reason})")
        if on_skip is not None:
            on_skip(rel, reason)

    stack: list[tuple[Path, PurePosixPath, tuple[tuple[int, int], ...]]] = [
        (root, PurePosixPath(), root_ids)
    ]
    while stack:
        dir_path, rel_dir, ancestors = stack.pop()
        try:
            with os.scandir(dir_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise CopyIOError(
                dir_path,
                f"Cannot read directory '{dir_path}': {e.strerror or e}",
                operation="scandir",
                errno=e.errno,
            ) from e

        subdirs: list[tuple[Path, PurePosixPath, tuple[tuple[int, int], ...]]] = []
        for entry in entries:
            rel = rel_dir / entry.name
            path = Path(entry.path)
            try:
                is_link = entry.is_symlink()
                is_dir = entry.is_dir()
                is_file = entry.is_file()
            except OSError as e:
                raise CopyIOError(
                    path, f"Cannot stat '{path}': {e.strerror or e}", operation="stat", errno=e.errno
                ) from e

            if matcher is not None and matcher.patterns:
                pattern = matcher.matching_pattern(rel, is_dir=is_dir)
                if pattern is not None:
                    skip(rel, f"matched {pattern!r}")
                    continue

            if is_link and symlinks is SymlinkPolicy.SKIP:
                skip(rel, "symlink")
                continue

            if is_link and symlinks is SymlinkPolicy.COPY:
                yield WalkEntry(path, rel, EntryKind.SYMLINK, is_dir=is_dir)
                continue

            if is_link and not (is_dir or is_file):
                raise CopyIOError(
                    path,
                    f"Broken symbolic link '{path}' cannot be followed",
                    operation="follow_symlink",
                )

            if is_dir:
                child_ancestors = ancestors
                if follow:
                    try:
                        ident = _identity(os.stat(path))
                    except OSError as e:
                        raise CopyIOError(
                            path, f"Cannot stat '{path}': {e.strerror or e}", operation="stat",
                            errno=e.errno,
                        ) from e
                    if ident in ancestors:
                        raise CopyIOError(
                            path,
                            f"Symbolic link loop detected at '{path}'",
                            code=ErrorCodes.SYMLINK_LOOP,
                            operation="follow_symlink",
                        )
                    child_ancestors = ancestors + (ident,)
                yield WalkEntry(path, rel, EntryKind.DIRECTORY, is_dir=True)
                subdirs.append((path, rel, child_ancestors))
            elif is_file:
                yield WalkEntry(path, rel, EntryKind.FILE)
            else:
                skip(rel, "not a regular file")

        stack.extend(reversed(subdirs))


# =============================================================================
# Copy
# =============================================================================


def _is_inside(child: Path, parent: Path) -> bool:
    return child == parent or parent in child.parents


class TreeCopier:
    """
    source_root → dest_root 복사 실행기.

    한 번의 복사에 한 인스턴스. 상태: 통계, 생성된 디렉터리 집합.
    """

    def __init__(
        self,
        source_root: Path,
        dest_root: Path,
        matcher: PatternMatcher | None = None,
        options: CopyOptions | None = None,
        cancel_check: Callable[[], bool] | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self.source_root = Path(source_root)
        self.dest_root = Path(dest_root)
        self.matcher = matcher or PatternMatcher()
        self.options = options or CopyOptions()
        self.cancel_check = cancel_check
        self.progress = progress
        self.stats = CopyStats()
        self._ready_dirs: set[PurePosixPath] = set()

    # =========================================================================
    # Preconditions
    # =========================================================================

    def _check_source(self) -> None:
        if not self.source_root.is_dir():
            raise CopyIOError(
                self.source_root,
                f"Source '{self.source_root}' does not exist or is not a directory",
                code=ErrorCodes.SOURCE_NOT_DIRECTORY,
            )

    def _check_destination(self) -> None:
        dest = self.dest_root
        if dest.is_symlink() or dest.exists():
            if not dest.is_dir():
                raise DestinationNotEmptyError(dest)
            if not self.options.overwrite and any(dest.iterdir()):
                raise DestinationNotEmptyError(dest)

        src_real = self.source_root.resolve()
        dest_real = dest.resolve()
        if not _is_inside(dest_real, src_real):
            return

        # 대상이 소스 안에 있어도 제외 패턴으로 걸러지면 허용
        rel = PurePosixPath(*dest_real.relative_to(src_real).parts)
        prefixes = [PurePosixPath(*rel.parts[: i + 1]) for i in range(len(rel.parts))]
        if any(self.matcher.is_excluded(p, is_dir=True) for p in prefixes):
            return
        raise CopyIOError(
            dest,
            f"Destination '{dest}' is inside source '{self.source_root}'",
            code=ErrorCodes.DESTINATION_INSIDE_SOURCE,
        )

    # =========================================================================
    # Entry Handlers
    # =========================================================================

    def _dest_for(self, rel: PurePosixPath) -> Path:
        return self.dest_root.joinpath(*rel.parts)

    def _fail(self, path: Path, operation: str, e: OSError) -> CopyIOError:
        logger.warning(
            f"Copy aborted at {path} ({operation}): {e}. "
            f"Partial content left in {self.dest_root}"
        )
        return CopyIOError(
            path,
            f"Failed to {operation.replace('_', ' ')} '{path}': {e.strerror or e}",
            operation=operation,
            errno=e.errno,
            dest_root=self.dest_root,
            partial=True,
        )

    def _ensure_dir(self, rel: PurePosixPath) -> None:
        """rel 및 모든 상위 디렉터리를 대상에 생성 (이미 있으면 통과)."""
        parts = rel.parts
        for i in range(len(parts)):
            prefix = PurePosixPath(*parts[: i + 1])
            if prefix in self._ready_dirs:
                continue
            dst = self._dest_for(prefix)
            if dst.is_dir() and not dst.is_symlink():
                self._ready_dirs.add(prefix)
                continue
            if dst.is_symlink() or dst.exists():
                raise CopyIOError(
                    dst,
                    f"Cannot create directory '{dst}': a non-directory entry is in the way",
                    operation="create_dir",
                    dest_root=self.dest_root,
                    partial=True,
                )
            try:
                dst.mkdir()
            except OSError as e:
                raise self._fail(dst, "create_dir", e) from e
            self._ready_dirs.add(prefix)
            self.stats.dirs_created += 1

    def _clear_target(self, dst: Path) -> None:
        """overwrite 시 기존 파일/링크 제거. 디렉터리는 절대 지우지 않음."""
        if dst.is_symlink():
            dst.unlink()
        elif dst.is_dir():
            raise CopyIOError(
                dst,
                f"Cannot overwrite directory '{dst}' with a file",
                operation="overwrite",
                dest_root=self.dest_root,
                partial=True,
            )

    def _copy_file(self, entry: WalkEntry) -> None:
        dst = self._dest_for(entry.rel_path)
        try:
            self._clear_target(dst)
            shutil.copyfile(entry.path, dst)
            if self.options.preserve_mode:
                shutil.copymode(entry.path, dst)
            size = dst.stat().st_size
        except OSError as e:
            raise self._fail(entry.path, "copy_file", e) from e
        self.stats.files_copied += 1
        self.stats.bytes_copied += size

    def _copy_symlink(self, entry: WalkEntry) -> None:
        dst = self._dest_for(entry.rel_path)
        try:
            target = os.readlink(entry.path)
            self._clear_target(dst)
            if dst.exists():
                dst.unlink()
            os.symlink(target, dst, target_is_directory=entry.is_dir)
        except OSError as e:
            raise self._fail(entry.path, "copy_symlink", e) from e
        self.stats.links_copied += 1

    def _on_skip(self, rel: PurePosixPath, reason: str) -> None:
        self.stats.entries_skipped += 1

    # =========================================================================
    # Run
    # =========================================================================

    def run(self) -> CopyStats:
        """
        복사 실행.

        Returns:
            CopyStats

        Raises:
            CopyIOError: 소스 없음, 대상이 소스 내부, 엔트리 복사 실패
            DestinationNotEmptyError: overwrite 없이 비어있지 않은 대상
            CopyCancelledError: cancel_check 가 True 반환
        """
        self._check_source()
        self._check_destination()

        try:
            self.dest_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self._fail(self.dest_root, "create_dir", e) from e
        self._ready_dirs.add(PurePosixPath())

        entries = walk_tree(
            self.source_root,
            matcher=self.matcher,
            symlinks=self.options.symlinks,
            on_skip=self._on_skip,
        )
        for entry in entries:
            if self.cancel_check is not None and self.cancel_check():
                logger.warning(f"Copy into {self.dest_root} cancelled; partial content left in place")
                raise CopyCancelledError(self.dest_root, self.stats)

            if entry.kind is EntryKind.DIRECTORY:
                if self.options.keep_empty_dirs:
                    self._ensure_dir(entry.rel_path)
                    self._report(entry.rel_path)
                continue

            self._ensure_dir(entry.rel_path.parent)
            if entry.kind is EntryKind.SYMLINK:
                self._copy_symlink(entry)
            else:
                self._copy_file(entry)
            self._report(entry.rel_path)

        logger.info(
            f"Copied {self.source_root} -> {self.dest_root}: "
            f"{self.stats.files_copied} files, {self.stats.bytes_copied} bytes, "
            f"{self.stats.entries_skipped} skipped"
        )
        return self.stats

    def _report(self, rel: PurePosixPath) -> None:
        if self.progress is not None:
            self.progress(rel)


def copy_tree(
    source_root: Path,
    dest_root: Path,
    patterns: PatternMatcher | Iterable[str] | None = None,
    options: CopyOptions | None = None,
    cancel_check: Callable[[], bool] | None = None,
    progress: ProgressCallback | None = None,
) -> CopyStats:
    """
    source_root 를 dest_root 로 복사 (ignore 패턴 적용).

    실패 시 롤백하지 않음: 이미 기록된 대상 내용은 그대로 남으며
    CopyIOError.context["partial"] 로 표시됨.

    Args:
        source_root: 복사할 디렉터리
        dest_root: 대상 디렉터리 (없으면 생성)
        patterns: 제외 패턴 (문자열 목록 또는 PatternMatcher)
        options: CopyOptions (기본값: 링크 재생성, 빈 디렉터리 유지, 덮어쓰기 금지)
        cancel_check: 엔트리 사이마다 호출, True 면 중단
        progress: 복사된 엔트리마다 호출

    Returns:
        CopyStats

    Raises:
        PatternSyntaxError: 잘못된 패턴 (복사 시작 전)
        CopyIOError, DestinationNotEmptyError, CopyCancelledError
    """
    if isinstance(patterns, PatternMatcher):
        matcher = patterns
    else:
        matcher = PatternMatcher(patterns or ())

    copier = TreeCopier(
        source_root,
        dest_root,
        matcher=matcher,
        options=options,
        cancel_check=cancel_check,
        progress=progress,
    )
    return copier.run()
