"""
Error definitions for stencil.

규칙:
- 조용한 실패 금지 → 모든 실패는 StencilError 하위 타입으로 명시적 전달
- 재시도 없음: 파일시스템 오류는 즉시 호출자에게 전달
- code 로 분류: CLI가 코드별로 사용자 메시지/종료 코드를 결정
"""

from typing import Any

# =============================================================================
# Error Codes
# =============================================================================


class ErrorCodes:
    """에러 코드 상수. 새 코드 추가 시 service.describe_error()에도 메시지 추가."""

    # === Pattern ===
    PATTERN_SYNTAX = "PATTERN_SYNTAX"

    # === Registry ===
    TEMPLATE_EXISTS = "TEMPLATE_EXISTS"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    INVALID_TEMPLATE_NAME = "INVALID_TEMPLATE_NAME"
    REGISTRY_CORRUPT = "REGISTRY_CORRUPT"
    REGISTRY_LOCK_TIMEOUT = "REGISTRY_LOCK_TIMEOUT"

    # === Copy / IO ===
    IO_FAILURE = "IO_FAILURE"
    SOURCE_NOT_DIRECTORY = "SOURCE_NOT_DIRECTORY"
    DESTINATION_INSIDE_SOURCE = "DESTINATION_INSIDE_SOURCE"
    DESTINATION_NOT_EMPTY = "DESTINATION_NOT_EMPTY"
    SYMLINK_LOOP = "SYMLINK_LOOP"
    STORAGE_MISSING = "STORAGE_MISSING"
    STORAGE_CLEANUP_FAILED = "STORAGE_CLEANUP_FAILED"
    COPY_CANCELLED = "COPY_CANCELLED"

    # === Config ===
    CONFIG_INVALID = "CONFIG_INVALID"


# =============================================================================
# Exceptions
# =============================================================================


class StencilError(Exception):
    """
    stencil 공통 에러.

    Usage:
        raise StencilError(ErrorCodes.IO_FAILURE, "copy failed", path="a/b.txt")
    """

    default_code = ErrorCodes.IO_FAILURE

    def __init__(self, code: str | None = None, message: str = "", **context: Any) -> None:
        self.code = code or self.default_code
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.message:
            return f"[{self.code}] {self.message}"
        ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.code}] {ctx_str}" if ctx_str else f"[{self.code}]"

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            "message": self.message,
            **{k: str(v) for k, v in self.context.items()},
        }


class PatternSyntaxError(StencilError):
    """잘못된 ignore 패턴. matcher 생성 시점에 발생 (walk 도중 아님)."""

    default_code = ErrorCodes.PATTERN_SYNTAX

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(
            message=f"Invalid ignore pattern {pattern!r}: {reason}",
            pattern=pattern,
            reason=reason,
        )


class TemplateExistsError(StencilError):
    """같은 이름의 템플릿이 이미 존재."""

    default_code = ErrorCodes.TEMPLATE_EXISTS

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(message=f"Template '{name}' already exists", name=name)


class TemplateNotFoundError(StencilError):
    """존재하지 않는 템플릿."""

    default_code = ErrorCodes.TEMPLATE_NOT_FOUND

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(message=f"Template '{name}' not found", name=name)


class InvalidTemplateNameError(StencilError):
    """디렉터리 이름으로 쓸 수 없는 템플릿 이름."""

    default_code = ErrorCodes.INVALID_TEMPLATE_NAME


class CopyIOError(StencilError):
    """
    파일시스템 작업 실패 (권한, 용량, 사라진 파일 등).

    path: 실패한 경로 (필수)
    partial: 대상에 일부 내용이 이미 기록됐는지 여부 (롤백 없음)
    """

    default_code = ErrorCodes.IO_FAILURE

    def __init__(
        self,
        path: Any,
        message: str,
        code: str | None = None,
        **context: Any,
    ) -> None:
        self.path = path
        super().__init__(code, message, path=path, **context)


class DestinationNotEmptyError(StencilError):
    """overwrite 없이 비어있지 않은 대상에 복사 시도."""

    default_code = ErrorCodes.DESTINATION_NOT_EMPTY

    def __init__(self, path: Any) -> None:
        self.path = path
        super().__init__(
            message=f"Destination '{path}' already exists and is not empty",
            path=path,
        )


class RegistryCorruptError(StencilError):
    """registry 파일을 읽을 수 없음. 절대 빈 registry로 대체하지 않음."""

    default_code = ErrorCodes.REGISTRY_CORRUPT


class RegistryLockTimeoutError(StencilError):
    """registry 락 획득 실패 (다른 프로세스가 사용 중)."""

    default_code = ErrorCodes.REGISTRY_LOCK_TIMEOUT


class CopyCancelledError(StencilError):
    """cancel_check 요청으로 복사 중단. stats: 중단 시점까지의 통계."""

    default_code = ErrorCodes.COPY_CANCELLED

    def __init__(self, dest_root: Any, stats: Any) -> None:
        self.dest_root = dest_root
        self.stats = stats
        super().__init__(
            message=f"Copy into '{dest_root}' was cancelled; partial content left in place",
            dest_root=dest_root,
        )


class ConfigError(StencilError):
    """config.yaml 또는 루트 경로 설정 오류."""

    default_code = ErrorCodes.CONFIG_INVALID
