"""
Domain Constants: stencil 전역 상수.

파일명 정책, 경로 상수, 종료 코드 등 시스템 전반에서 사용되는 값들.
"""

# =============================================================================
# Root Directory Structure (저장소 루트 구조)
# =============================================================================
# <root>/
# ├── registry            # 템플릿 목록 (JSON)
# ├── registry.lock       # registry 읽기-수정-쓰기 advisory lock
# ├── config.yaml         # 사용자 설정 (선택)
# └── templates/
#     ├── <name>/         # 캡처된 트리
#     ├── .staging/       # 캡처 진행 중 (완료 후 rename)
#     └── .trash/         # 삭제 진행 중

REGISTRY_FILENAME = "registry"
REGISTRY_LOCK_FILENAME = "registry.lock"
CONFIG_FILENAME = "config.yaml"
TEMPLATES_DIRNAME = "templates"
STAGING_DIRNAME = ".staging"
TRASH_DIRNAME = ".trash"

REGISTRY_VERSION = 1

# =============================================================================
# Configuration
# =============================================================================

APP_NAME = "stencil"
ROOT_ENV_VAR = "STENCIL_HOME"
DEFAULT_LOCK_TIMEOUT = 10.0

# =============================================================================
# Template Naming
# =============================================================================

TEMPLATE_NAME_MAX_LENGTH = 64
FORBIDDEN_NAME_CHARS = frozenset('/\\:*?"<>|')

# =============================================================================
# Exit Codes (sysexits.h)
# =============================================================================

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 64
EXIT_IOERR = 74
EXIT_CONFIG = 78
EXIT_CANCELLED = 130
