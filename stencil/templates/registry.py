"""
템플릿 registry: 이름 → 저장된 트리 + 메타데이터.

핵심 규칙:
- 이름 중복 생성 시 에러 (fail-fast), overwrite 명시 시에만 교체
- 캡처: .staging/ 에 복사 → rename → registry 기록 (복사 실패 시 registry 불변)
- 삭제: registry 항목 먼저 제거 → 저장소 삭제
  (크래시 시 "항목 없는 저장소"만 남음, registry 가 없는 저장소를 가리키는 일은 없음)
- registry 손상/읽기 실패는 치명적 에러 (빈 목록으로 대체 금지)
- registry 읽기-수정-쓰기는 filelock 으로 보호
- <root>/templates/ 아래는 이 모듈만 생성/삭제
"""

import logging
import os
import shutil
import stat
import uuid
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import Any

from stencil.core.copier import EntryKind, copy_tree, walk_tree
from stencil.core.matcher import PatternMatcher
from stencil.core.storage import atomic_write_json, load_json_object, registry_lock
from stencil.domain.constants import (
    DEFAULT_LOCK_TIMEOUT,
    FORBIDDEN_NAME_CHARS,
    REGISTRY_FILENAME,
    REGISTRY_LOCK_FILENAME,
    REGISTRY_VERSION,
    STAGING_DIRNAME,
    TEMPLATE_NAME_MAX_LENGTH,
    TEMPLATES_DIRNAME,
    TRASH_DIRNAME,
)
from stencil.domain.errors import (
    CopyIOError,
    ErrorCodes,
    InvalidTemplateNameError,
    RegistryCorruptError,
    StencilError,
    TemplateExistsError,
    TemplateNotFoundError,
)
from stencil.domain.schemas import CopyOptions, CopyStats, RegistryReport, SymlinkPolicy, Template

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PurePosixPath], None]

# =============================================================================
# Validation
# =============================================================================


def validate_template_name(name: str) -> None:
    """
    템플릿 이름 유효성 검증.

    이름은 그대로 저장소 디렉터리 이름이 되므로:
    - 비어있지 않음, 최대 64자
    - 앞뒤 공백 금지, "." 으로 시작 금지 (숨김/상대 경로)
    - 금지 문자: / \\ : * ? " < > | 및 제어 문자

    Raises:
        InvalidTemplateNameError
    """
    if not name or not name.strip():
        raise InvalidTemplateNameError(message="Template name cannot be empty", name=name)

    if len(name) > TEMPLATE_NAME_MAX_LENGTH:
        raise InvalidTemplateNameError(
            message=f"Template name exceeds {TEMPLATE_NAME_MAX_LENGTH} characters",
            name=name,
            length=len(name),
        )

    if name != name.strip():
        raise InvalidTemplateNameError(
            message="Template name cannot start or end with whitespace",
            name=name,
        )

    if name.startswith("."):
        raise InvalidTemplateNameError(message="Template name cannot start with '.'", name=name)

    found_forbidden = sorted(set(name) & FORBIDDEN_NAME_CHARS)
    if found_forbidden or any(ord(c) < 32 for c in name):
        raise InvalidTemplateNameError(
            message=f"Template name contains forbidden characters: {found_forbidden or 'control'}",
            name=name,
        )


def get_storage_path(root: Path, name: str) -> Path:
    """템플릿 저장 디렉터리 경로: <root>/templates/<name>."""
    return root / TEMPLATES_DIRNAME / name


def _force_rmtree(path: Path) -> None:
    """
    읽기 전용 디렉터리가 섞여 있어도 삭제.

    하위 디렉터리에 u+rwx 를 먼저 부여 (파일 삭제에는 디렉터리 쓰기 권한 필요).
    """
    if path.is_symlink() or not path.is_dir():
        path.unlink()
        return
    try:
        os.chmod(path, stat.S_IMODE(os.lstat(path).st_mode) | stat.S_IRWXU)
    except OSError:
        pass
    for dirpath, dirnames, _ in os.walk(path):
        for d in dirnames:
            sub = os.path.join(dirpath, d)
            if os.path.islink(sub):
                continue
            try:
                os.chmod(sub, stat.S_IMODE(os.lstat(sub).st_mode) | stat.S_IRWXU)
            except OSError:
                pass
    shutil.rmtree(path)


# =============================================================================
# Template Registry
# =============================================================================


class TemplateRegistry:
    """
    템플릿 registry.

    구조:
    <root>/
    ├── registry             # {"version": 1, "templates": {name: {...}}}
    ├── registry.lock
    └── templates/
        ├── <name>/          # 캡처된 트리
        ├── .staging/        # 캡처 중
        └── .trash/          # 삭제 중
    """

    def __init__(self, root: Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        """
        Args:
            root: 저장소 루트 (설정 로더가 결정, registry 는 경로를 해석하지 않음)
            lock_timeout: registry 락 대기 시간 (초)
        """
        self.root = Path(root)
        self.registry_path = self.root / REGISTRY_FILENAME
        self.templates_dir = self.root / TEMPLATES_DIRNAME
        self.staging_dir = self.templates_dir / STAGING_DIRNAME
        self.trash_dir = self.templates_dir / TRASH_DIRNAME
        self.lock_timeout = lock_timeout

    def __repr__(self) -> str:
        return f"TemplateRegistry(root={str(self.root)!r})"

    @contextmanager
    def _lock(self) -> Generator[None, None, None]:
        with registry_lock(self.root / REGISTRY_LOCK_FILENAME, self.lock_timeout):
            yield

    # =========================================================================
    # Persistence
    # =========================================================================

    def _corrupt(self, reason: str, **context: Any) -> RegistryCorruptError:
        return RegistryCorruptError(
            message=f"Registry '{self.registry_path}' is unreadable: {reason}",
            path=self.registry_path,
            **context,
        )

    def _load(self) -> dict[str, Template]:
        """
        registry 로드.

        Returns:
            name → Template (파일이 없으면 빈 dict)

        Raises:
            RegistryCorruptError: 파일이 아님, 읽기 실패, JSON/구조 오류,
                저장 경로가 templates/<name> 이 아닌 항목
        """
        data = load_json_object(self.registry_path)
        if data is None:
            return {}
        if data.get("version") != REGISTRY_VERSION:
            raise self._corrupt(f"unsupported version {data.get('version')!r}")
        entries = data.get("templates")
        if not isinstance(entries, dict):
            raise self._corrupt("'templates' is not an object")

        templates: dict[str, Template] = {}
        for name, entry in entries.items():
            try:
                template = Template.from_dict(entry, self.root)
            except (KeyError, TypeError, AttributeError) as e:
                raise self._corrupt(f"malformed entry {name!r} ({e})", name=name) from e
            if template.name != name:
                raise self._corrupt(f"entry key {name!r} does not match its name", name=name)
            # 저장소는 정확히 templates/<name> 이어야 함 (밖이나 다른 항목의 디렉터리면 삭제 시 사고)
            expected = os.path.normpath(get_storage_path(self.root, name))
            if os.path.normpath(template.storage_path) != expected:
                raise self._corrupt(
                    f"entry {name!r} does not point at its own storage directory",
                    name=name,
                    storage_path=str(template.storage_path),
                )
            templates[name] = template
        return templates

    def _save(self, templates: dict[str, Template]) -> None:
        """
        registry 원자적 저장.

        Raises:
            CopyIOError: 쓰기 실패 (operation="write_registry"), 기존 파일은 그대로
        """
        atomic_write_json(
            self.registry_path,
            {
                "version": REGISTRY_VERSION,
                "templates": {
                    name: templates[name].to_dict(self.root) for name in sorted(templates)
                },
            },
        )

    def _work_dir(self, parent: Path, name: str) -> Path:
        """.staging/.trash 아래 고유 작업 경로 (생성하지 않음)."""
        parent.mkdir(parents=True, exist_ok=True)
        return parent / f"{name}-{uuid.uuid4().hex[:8]}"

    def _move_to_trash(self, storage: Path, name: str) -> Path:
        trashed = self._work_dir(self.trash_dir, name)
        os.replace(storage, trashed)
        return trashed

    def _restore_previous(self, previous: Path | None, final: Path) -> None:
        """교체 실패 시 .trash 로 옮겨둔 이전 저장소를 제자리로."""
        if previous is None:
            return
        try:
            os.replace(previous, final)
        except OSError as e:
            logger.error(
                f"Cannot restore previous storage {previous} to {final}: {e}. "
                f"Move it back manually before running 'stencil doctor --fix'."
            )
        else:
            logger.warning(f"Restored previous storage for '{final.name}' after a failed capture")

    # =========================================================================
    # Create (capture)
    # =========================================================================

    def add(
        self,
        name: str,
        source_path: Path,
        patterns: Iterable[str] = (),
        description: str | None = None,
        options: CopyOptions | None = None,
        overwrite: bool = False,
        cancel_check: Callable[[], bool] | None = None,
        progress: ProgressCallback | None = None,
    ) -> Template:
        """
        디렉터리를 템플릿으로 캡처.

        순서:
        1. 이름/패턴 검증 (파일시스템 접근 전)
        2. 중복 확인
        3. .staging/<name>-<token>/ 으로 복사 (락 밖에서)
        4. 락 안에서 재확인 → templates/<name>/ 으로 rename → registry 기록

        복사 실패 시 registry 는 변경되지 않음. 부분 복사본은 .staging/ 에
        그대로 남으며 (롤백 없음) prune() 으로 정리.
        overwrite 시 이전 저장소는 .trash/ 로 옮겨두고, rename 이나 registry
        기록이 실패하면 제자리로 되돌림. 성공 시 락 해제 후 삭제.

        Args:
            name: 템플릿 이름
            source_path: 캡처할 디렉터리
            patterns: ignore 패턴
            description: 설명
            options: 복사 옵션 (overwrite 는 무시, staging 은 항상 새 디렉터리)
            overwrite: 같은 이름의 템플릿을 교체
            cancel_check: 협력적 취소
            progress: 엔트리별 진행 콜백

        Returns:
            생성된 Template

        Raises:
            InvalidTemplateNameError, PatternSyntaxError, TemplateExistsError,
            CopyIOError, CopyCancelledError, RegistryCorruptError,
            RegistryLockTimeoutError
        """
        validate_template_name(name)
        matcher = PatternMatcher(patterns)
        source = Path(source_path).expanduser().resolve()
        copy_options = replace(options or CopyOptions(), overwrite=False)

        with self._lock():
            if name in self._load() and not overwrite:
                raise TemplateExistsError(name)
            staging = self._work_dir(self.staging_dir, name)

        try:
            stats = copy_tree(
                source,
                staging,
                matcher,
                copy_options,
                cancel_check=cancel_check,
                progress=progress,
            )
        except StencilError:
            if staging.exists():
                logger.warning(
                    f"Capture of '{name}' failed; partial copy left at {staging} "
                    f"(remove it with 'stencil doctor --fix')"
                )
            raise

        with self._lock():
            templates = self._load()
            if name in templates and not overwrite:
                # 복사 중 다른 프로세스가 같은 이름을 등록함
                _force_rmtree(staging)
                raise TemplateExistsError(name)

            final = get_storage_path(self.root, name)
            previous = None
            if final.exists() or final.is_symlink():
                if name not in templates:
                    logger.warning(f"Replacing orphaned storage directory {final} (no registry entry)")
                try:
                    previous = self._move_to_trash(final, name)
                except OSError as e:
                    raise CopyIOError(
                        final,
                        f"Cannot replace existing storage '{final}': {e.strerror or e}",
                        operation="replace_storage",
                        errno=e.errno,
                    ) from e

            try:
                os.replace(staging, final)
            except OSError as e:
                self._restore_previous(previous, final)
                raise CopyIOError(
                    staging,
                    f"Cannot move captured tree into '{final}': {e.strerror or e}",
                    operation="commit_storage",
                    errno=e.errno,
                ) from e

            template = Template(
                name=name,
                storage_path=final,
                created_at=datetime.now(UTC).isoformat(),
                source_path=str(source),
                description=description,
                patterns=matcher.sources,
            )
            templates[name] = template
            try:
                self._save(templates)
            except StencilError:
                # registry 는 이전 상태 그대로 → 새 트리는 staging 으로 되돌리고 이전 저장소 복원
                try:
                    os.replace(final, staging)
                except OSError as e:
                    logger.error(f"Cannot move {final} back to {staging} after a failed registry write: {e}")
                else:
                    self._restore_previous(previous, final)
                raise

        if previous is not None:
            self._purge(previous)

        logger.info(
            f"Captured '{name}' from {source}: "
            f"{stats.files_copied} files, {stats.entries_skipped} skipped"
        )
        return template

    # =========================================================================
    # Read
    # =========================================================================

    def get(self, name: str) -> Template:
        """
        템플릿 조회.

        Raises:
            TemplateNotFoundError
        """
        templates = self._load()
        if name not in templates:
            raise TemplateNotFoundError(name)
        return templates[name]

    def list_templates(self) -> list[Template]:
        """전체 템플릿 목록 (이름순)."""
        templates = self._load()
        return [templates[name] for name in sorted(templates)]

    def _require_storage(self, template: Template) -> Path:
        storage = template.storage_path
        if not storage.is_dir():
            raise CopyIOError(
                storage,
                f"Storage for template '{template.name}' is missing: {storage}",
                code=ErrorCodes.STORAGE_MISSING,
                name=template.name,
            )
        return storage

    def tree(self, name: str) -> list[str]:
        """
        저장된 트리의 상대 경로 목록 (디렉터리는 "/" 로 끝남).

        전위 순서: 디렉터리 바로 뒤에 그 하위 엔트리.

        Raises:
            TemplateNotFoundError, CopyIOError(STORAGE_MISSING)
        """
        storage = self._require_storage(self.get(name))
        entries = sorted(
            walk_tree(storage, symlinks=SymlinkPolicy.COPY),
            key=lambda e: e.rel_path.parts,
        )
        paths = []
        for entry in entries:
            rel = entry.rel_path.as_posix()
            paths.append(rel + "/" if entry.kind is EntryKind.DIRECTORY else rel)
        return paths

    # =========================================================================
    # Instantiate
    # =========================================================================

    def instantiate(
        self,
        name: str,
        dest_path: Path,
        overwrite: bool = False,
        options: CopyOptions | None = None,
        cancel_check: Callable[[], bool] | None = None,
        progress: ProgressCallback | None = None,
    ) -> CopyStats:
        """
        템플릿을 dest_path 로 복사.

        저장된 내용은 캡처 시 이미 걸러졌으므로 ignore 패턴 없이 전부 복사.
        실패 시 롤백 없음 (dest_path 에 부분 내용이 남을 수 있음).

        Raises:
            TemplateNotFoundError, CopyIOError, DestinationNotEmptyError,
            CopyCancelledError
        """
        storage = self._require_storage(self.get(name))
        copy_options = replace(options or CopyOptions(), overwrite=overwrite)
        dest = Path(dest_path).expanduser()

        stats = copy_tree(
            storage,
            dest,
            None,
            copy_options,
            cancel_check=cancel_check,
            progress=progress,
        )
        logger.info(f"Instantiated '{name}' into {dest}")
        return stats

    # =========================================================================
    # Update
    # =========================================================================

    def set_description(self, name: str, description: str | None) -> Template:
        """
        설명 변경 (빈 문자열 → None).

        Raises:
            TemplateNotFoundError
        """
        with self._lock():
            templates = self._load()
            if name not in templates:
                raise TemplateNotFoundError(name)
            template = replace(templates[name], description=description or None)
            templates[name] = template
            self._save(templates)
        return template

    # =========================================================================
    # Delete
    # =========================================================================

    def _purge(self, path: Path) -> None:
        """교체된 이전 저장소 삭제. 실패해도 registry 는 이미 일관됨 → 경고만."""
        try:
            _force_rmtree(path)
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}. Run 'stencil doctor --fix' to clean up.")

    def remove(self, name: str) -> Template:
        """
        템플릿 삭제.

        락 안: registry 항목 제거 → 저장소를 .trash/ 로 rename.
        락 밖: .trash/ 의 트리 삭제 (큰 트리 삭제 중에도 다른 명령이 대기하지 않음).
        저장소 정리 실패 시 항목은 이미 없음 → CopyIOError(STORAGE_CLEANUP_FAILED),
        남은 디렉터리는 prune() 대상.

        Returns:
            삭제된 Template

        Raises:
            TemplateNotFoundError, CopyIOError(STORAGE_CLEANUP_FAILED)
        """
        with self._lock():
            templates = self._load()
            if name not in templates:
                raise TemplateNotFoundError(name)
            template = templates.pop(name)
            self._save(templates)

            storage = template.storage_path
            if not (storage.exists() or storage.is_symlink()):
                logger.warning(f"Storage for '{name}' was already missing: {storage}")
                return template

            try:
                trashed = self._move_to_trash(storage, name)
            except OSError as e:
                raise self._cleanup_failed(name, storage, e) from e

        try:
            _force_rmtree(trashed)
        except OSError as e:
            raise self._cleanup_failed(name, trashed, e) from e

        logger.info(f"Removed template '{name}'")
        return template

    def _cleanup_failed(self, name: str, path: Path, e: OSError) -> CopyIOError:
        return CopyIOError(
            path,
            f"Template '{name}' was unregistered but its storage could not be deleted: "
            f"{e.strerror or e}",
            code=ErrorCodes.STORAGE_CLEANUP_FAILED,
            errno=e.errno,
        )

    # =========================================================================
    # Maintenance
    # =========================================================================

    def verify(self) -> RegistryReport:
        """registry ↔ 저장소 정합성 점검 (변경 없음)."""
        templates = self._load()
        report = RegistryReport()

        for name in sorted(templates):
            if not templates[name].storage_path.is_dir():
                report.missing_storage.append(name)

        if self.templates_dir.is_dir():
            for child in sorted(self.templates_dir.iterdir()):
                if child.name in (STAGING_DIRNAME, TRASH_DIRNAME):
                    continue
                if child.name not in templates:
                    report.orphaned_storage.append(child)

        for work_dir in (self.staging_dir, self.trash_dir):
            if work_dir.is_dir():
                report.leftovers.extend(sorted(work_dir.iterdir()))

        return report

    def prune(self, drop_missing: bool = False) -> list[Path]:
        """
        불일치 정리.

        - 항목 없는 저장소, .staging/.trash 잔여물 삭제
        - drop_missing=True: 저장소가 없는 registry 항목도 제거

        Returns:
            삭제된 경로 목록 (drop_missing 으로 제거된 항목은 저장 경로로 표시)
        """
        removed: list[Path] = []
        with self._lock():
            report = self.verify()

            for path in report.orphaned_storage + report.leftovers:
                try:
                    _force_rmtree(path)
                except OSError as e:
                    raise CopyIOError(
                        path,
                        f"Failed to delete '{path}': {e.strerror or e}",
                        code=ErrorCodes.STORAGE_CLEANUP_FAILED,
                        errno=e.errno,
                    ) from e
                logger.info(f"Pruned {path}")
                removed.append(path)

            if drop_missing and report.missing_storage:
                templates = self._load()
                for name in report.missing_storage:
                    removed.append(templates.pop(name).storage_path)
                    logger.info(f"Dropped registry entry '{name}' (storage missing)")
                self._save(templates)

        return removed
