"""App layer: 설정 로더, 서비스, CLI."""

from .config import StencilConfig, load_config, resolve_root
from .service import TemplateService, describe_error, exit_code_for

__all__ = [
    "StencilConfig",
    "load_config",
    "resolve_root",
    "TemplateService",
    "describe_error",
    "exit_code_for",
]
