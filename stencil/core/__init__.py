"""
Core layer: 파일시스템을 직접 다루는 모듈.

역할:
- ignore 패턴 컴파일/매칭 (matcher.py)
- 패턴을 적용한 트리 복사 (copier.py)
- registry 파일 읽기/원자적 쓰기, registry 락 (storage.py)
"""

from .copier import EntryKind, TreeCopier, WalkEntry, copy_tree, walk_tree
from .matcher import IgnorePattern, PatternMatcher, Token, TokenKind, compile_pattern
from .storage import atomic_write_json, load_json_object, registry_lock

__all__ = [
    # matcher
    "PatternMatcher",
    "IgnorePattern",
    "Token",
    "TokenKind",
    "compile_pattern",
    # copier
    "copy_tree",
    "walk_tree",
    "TreeCopier",
    "WalkEntry",
    "EntryKind",
    # storage
    "atomic_write_json",
    "load_json_object",
    "registry_lock",
]
