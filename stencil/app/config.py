"""
설정 로더: 저장소 루트 결정 + config.yaml.

루트 결정 순서:
1. STENCIL_HOME 환경변수 (~, $VAR 확장)
2. $XDG_CONFIG_HOME/stencil
3. %APPDATA%\\stencil (Windows)
4. ~/.config/stencil

core 는 이 모듈을 import 하지 않음 (루트는 항상 명시적으로 주입).
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from stencil.core.matcher import PatternMatcher
from stencil.domain.constants import APP_NAME, CONFIG_FILENAME, DEFAULT_LOCK_TIMEOUT, ROOT_ENV_VAR
from stencil.domain.errors import ConfigError, PatternSyntaxError
from stencil.domain.schemas import CopyOptions, SymlinkPolicy

logger = logging.getLogger(__name__)


@dataclass
class StencilConfig:
    """stencil 설정."""

    root: Path
    default_ignore: list[str] = field(default_factory=list)
    symlinks: SymlinkPolicy = SymlinkPolicy.COPY
    keep_empty_dirs: bool = True
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    def copy_options(self, overwrite: bool = False) -> CopyOptions:
        return CopyOptions(
            symlinks=self.symlinks,
            keep_empty_dirs=self.keep_empty_dirs,
            overwrite=overwrite,
        )


def resolve_root(environ: Mapping[str, str] | None = None) -> Path:
    """
    저장소 루트 경로 결정 (생성하지 않음).

    Args:
        environ: 환경변수 (기본: os.environ)

    Returns:
        루트 경로
    """
    env = os.environ if environ is None else environ

    override = env.get(ROOT_ENV_VAR, "").strip()
    if override:
        return Path(os.path.expandvars(os.path.expanduser(override)))

    xdg = env.get("XDG_CONFIG_HOME", "").strip()
    if xdg:
        return Path(xdg) / APP_NAME

    if os.name == "nt" and env.get("APPDATA"):
        return Path(env["APPDATA"]) / APP_NAME

    return Path.home() / ".config" / APP_NAME


def _require(condition: bool, path: Path, message: str, **context: Any) -> None:
    if not condition:
        raise ConfigError(message=f"{path}: {message}", path=path, **context)


def load_config(root: Path | None = None, environ: Mapping[str, str] | None = None) -> StencilConfig:
    """
    설정 로드.

    <root>/config.yaml 이 없으면 기본값. 있으면 키별로 검증:
    - default_ignore: 패턴 문자열 목록 (문법 오류 시 ConfigError)
    - symlinks: copy | follow | skip
    - keep_empty_dirs: bool
    - lock_timeout: 양수

    Args:
        root: 저장소 루트 (None 이면 resolve_root())
        environ: 환경변수 (테스트 주입용)

    Returns:
        StencilConfig

    Raises:
        ConfigError
    """
    root = root if root is not None else resolve_root(environ)
    config = StencilConfig(root=root)

    config_path = root / CONFIG_FILENAME
    if not config_path.exists():
        return config

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(message=f"Cannot read {config_path}: {e}", path=config_path) from e

    if data is None:
        return config
    _require(isinstance(data, dict), config_path, "top-level value must be a mapping")

    unknown = sorted(set(data) - {"default_ignore", "symlinks", "keep_empty_dirs", "lock_timeout"})
    if unknown:
        logger.warning(f"Ignoring unknown keys in {config_path}: {', '.join(map(str, unknown))}")

    patterns = data.get("default_ignore", [])
    _require(
        isinstance(patterns, list) and all(isinstance(p, str) for p in patterns),
        config_path,
        "'default_ignore' must be a list of strings",
    )
    try:
        PatternMatcher(patterns)
    except PatternSyntaxError as e:
        raise ConfigError(message=f"{config_path}: {e.message}", path=config_path) from e
    config.default_ignore = list(patterns)

    symlinks = data.get("symlinks", SymlinkPolicy.COPY.value)
    valid = [p.value for p in SymlinkPolicy]
    _require(symlinks in valid, config_path, f"'symlinks' must be one of {valid}", value=symlinks)
    config.symlinks = SymlinkPolicy(symlinks)

    keep_empty = data.get("keep_empty_dirs", True)
    _require(isinstance(keep_empty, bool), config_path, "'keep_empty_dirs' must be true or false")
    config.keep_empty_dirs = keep_empty

    timeout = data.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)
    _require(
        isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0,
        config_path,
        "'lock_timeout' must be a positive number",
    )
    config.lock_timeout = float(timeout)

    return config
