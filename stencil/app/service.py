"""
캡처/복제 서비스: 사용자 의도 → registry 호출.

역할:
- "이 폴더를 X 로 캡처", "X 를 여기에 복제", "X 삭제" 를 registry 호출로 변환
- 설정의 기본 ignore 패턴/복사 옵션 적용
- 에러 코드 → 사용자 메시지, 종료 코드

자체 상태 없음 (registry + 설정 참조만 보관).
"""

import logging
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath

from stencil.app.config import StencilConfig
from stencil.domain.constants import EXIT_CANCELLED, EXIT_CONFIG, EXIT_ERROR, EXIT_IOERR, EXIT_USAGE
from stencil.domain.errors import ErrorCodes, StencilError
from stencil.domain.schemas import CopyStats, RegistryReport, Template
from stencil.templates.registry import TemplateRegistry

logger = logging.getLogger(__name__)

# =============================================================================
# Error → User Message
# =============================================================================

_HINTS: dict[str, str] = {
    ErrorCodes.TEMPLATE_NOT_FOUND: "List existing templates with 'stencil list'.",
    ErrorCodes.TEMPLATE_EXISTS: "Choose another name, or pass --force to replace it.",
    ErrorCodes.DESTINATION_NOT_EMPTY: "Pick an empty location, or pass --force to copy over it.",
    ErrorCodes.PATTERN_SYNTAX: "Patterns use '/', '*', '?', '[...]' and whole-segment '**'.",
    ErrorCodes.REGISTRY_CORRUPT: (
        "Fix the file by hand or move it away (you will lose the template list); "
        "captured trees under templates/ are left untouched."
    ),
    ErrorCodes.REGISTRY_LOCK_TIMEOUT: "Another stencil process is using the registry; try again.",
    ErrorCodes.STORAGE_MISSING: "Run 'stencil doctor' to inspect the registry.",
    ErrorCodes.STORAGE_CLEANUP_FAILED: "Run 'stencil doctor --fix' to remove what is left.",
    ErrorCodes.COPY_CANCELLED: "Already copied content was left in place.",
}

_EXIT_CODES: dict[str, int] = {
    ErrorCodes.TEMPLATE_NOT_FOUND: EXIT_USAGE,
    ErrorCodes.TEMPLATE_EXISTS: EXIT_USAGE,
    ErrorCodes.INVALID_TEMPLATE_NAME: EXIT_USAGE,
    ErrorCodes.DESTINATION_NOT_EMPTY: EXIT_USAGE,
    ErrorCodes.PATTERN_SYNTAX: EXIT_USAGE,
    ErrorCodes.SOURCE_NOT_DIRECTORY: EXIT_USAGE,
    ErrorCodes.DESTINATION_INSIDE_SOURCE: EXIT_USAGE,
    ErrorCodes.REGISTRY_CORRUPT: EXIT_CONFIG,
    ErrorCodes.CONFIG_INVALID: EXIT_CONFIG,
    ErrorCodes.REGISTRY_LOCK_TIMEOUT: EXIT_IOERR,
    ErrorCodes.IO_FAILURE: EXIT_IOERR,
    ErrorCodes.SYMLINK_LOOP: EXIT_IOERR,
    ErrorCodes.STORAGE_MISSING: EXIT_IOERR,
    ErrorCodes.STORAGE_CLEANUP_FAILED: EXIT_IOERR,
    ErrorCodes.COPY_CANCELLED: EXIT_CANCELLED,
}


def describe_error(err: StencilError) -> str:
    """
    에러 → 사람이 읽을 메시지 (힌트 포함).

    IO_FAILURE 계열은 실패 경로를 항상 포함하며,
    부분 복사가 남았으면 그 위치를 알려줌 (롤백 없음).
    """
    lines = [err.message or str(err)]

    if err.context.get("partial"):
        lines.append(
            f"Copy stopped midway; partial content was left in {err.context.get('dest_root')}."
        )

    hint = _HINTS.get(err.code)
    if hint:
        lines.append(hint)
    return "\n".join(lines)


def exit_code_for(err: StencilError) -> int:
    """에러 코드 → 프로세스 종료 코드 (sysexits)."""
    return _EXIT_CODES.get(err.code, EXIT_ERROR)


# =============================================================================
# Service
# =============================================================================


class TemplateService:
    """
    CLI 가 호출하는 진입점.

    Usage:
        service = TemplateService.from_config(load_config())
        service.capture("webapp", Path("~/projects/webapp"), patterns=["node_modules/"])
        service.instantiate("webapp", Path("./new-app"))
    """

    def __init__(self, registry: TemplateRegistry, config: StencilConfig | None = None):
        self.registry = registry
        self.config = config or StencilConfig(root=registry.root)

    @classmethod
    def from_config(cls, config: StencilConfig) -> "TemplateService":
        registry = TemplateRegistry(config.root, lock_timeout=config.lock_timeout)
        return cls(registry, config)

    def capture(
        self,
        name: str,
        source_path: Path,
        patterns: Iterable[str] = (),
        description: str | None = None,
        use_default_ignore: bool = True,
        overwrite: bool = False,
        cancel_check: Callable[[], bool] | None = None,
        progress: Callable[[PurePosixPath], None] | None = None,
    ) -> Template:
        """
        source_path 를 name 으로 캡처.

        use_default_ignore=True 이면 config.yaml 의 default_ignore 를 앞에 추가.
        """
        all_patterns = list(patterns)
        if use_default_ignore:
            all_patterns = list(self.config.default_ignore) + all_patterns

        return self.registry.add(
            name,
            source_path,
            patterns=all_patterns,
            description=description,
            options=self.config.copy_options(),
            overwrite=overwrite,
            cancel_check=cancel_check,
            progress=progress,
        )

    def list_templates(self) -> list[Template]:
        return self.registry.list_templates()

    def instantiate(
        self,
        name: str,
        dest_path: Path,
        overwrite: bool = False,
        cancel_check: Callable[[], bool] | None = None,
        progress: Callable[[PurePosixPath], None] | None = None,
    ) -> CopyStats:
        return self.registry.instantiate(
            name,
            dest_path,
            overwrite=overwrite,
            options=self.config.copy_options(overwrite=overwrite),
            cancel_check=cancel_check,
            progress=progress,
        )

    def remove(self, name: str) -> Template:
        return self.registry.remove(name)

    def get(self, name: str) -> Template:
        return self.registry.get(name)

    def tree(self, name: str) -> list[str]:
        return self.registry.tree(name)

    def describe(self, name: str, description: str | None) -> Template:
        return self.registry.set_description(name, description)

    def verify(self) -> RegistryReport:
        return self.registry.verify()

    def prune(self, drop_missing: bool = False) -> list[Path]:
        return self.registry.prune(drop_missing=drop_missing)
