"""
Templates layer: 템플릿 registry 모듈.

역할:
- 템플릿 캡처/조회/복제/삭제 (registry.py)

주의: 폴더 구분
- stencil/templates/ → 코드 (이 모듈)
- <root>/templates/ → 데이터 저장소 (캡처된 트리)
"""

from .registry import (
    TemplateRegistry,
    get_storage_path,
    validate_template_name,
)

__all__ = [
    "TemplateRegistry",
    "validate_template_name",
    "get_storage_path",
]
