"""
Ignore 패턴 매처: glob 스타일 패턴 → 토큰 시퀀스로 컴파일.

규칙:
- 토큰 종류는 닫힌 집합: LITERAL / WILDCARD / GLOBSTAR
- 컴파일은 생성 시 1회, 잘못된 패턴은 생성 시점에 PatternSyntaxError (fail-fast)
- 매칭은 경로 세그먼트 단위, 구분자는 항상 "/"
- "/" 로 시작하지 않는 패턴은 경로의 어느 접미사와 일치해도 매칭
- "/" 로 끝나는 패턴은 디렉터리에만 매칭
- 빈 패턴 집합은 아무것도 제외하지 않음
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath, PurePosixPath

from stencil.domain.errors import PatternSyntaxError

# =============================================================================
# Tokens
# =============================================================================


class TokenKind(str, Enum):
    """패턴 토큰 종류."""

    LITERAL = "literal"    # 세그먼트 정확히 일치
    WILDCARD = "wildcard"  # *, ?, [...] 포함 세그먼트 (세그먼트 경계를 넘지 않음)
    GLOBSTAR = "globstar"  # ** : 0개 이상의 세그먼트


@dataclass(frozen=True)
class Token:
    """컴파일된 패턴 토큰."""

    kind: TokenKind
    text: str
    regex: re.Pattern[str] | None = None

    def matches_segment(self, segment: str) -> bool:
        if self.kind is TokenKind.GLOBSTAR:
            return True
        if self.regex is None:
            # LITERAL (WILDCARD 는 항상 regex 를 가짐)
            return segment == self.text
        return self.regex.fullmatch(segment) is not None


GLOBSTAR_TOKEN = Token(TokenKind.GLOBSTAR, "**")


@dataclass(frozen=True)
class IgnorePattern:
    """
    컴파일된 ignore 패턴 하나.

    anchored: "/build" 처럼 루트 기준으로만 매칭
    dir_only: "build/" 처럼 디렉터리에만 매칭
    """

    source: str
    tokens: tuple[Token, ...]
    anchored: bool = False
    dir_only: bool = False

    def matches(self, segments: Sequence[str], is_dir: bool = False) -> bool:
        if not segments:
            return False
        if self.dir_only and not is_dir:
            return False
        return _match_tokens(self.tokens, segments, anchored=self.anchored)


# =============================================================================
# Compilation
# =============================================================================


def _compile_segment(segment: str, pattern: str) -> Token:
    """
    세그먼트 하나를 토큰으로 변환.

    Raises:
        PatternSyntaxError: 닫히지 않은 [, 끝에 남은 \\, 빈 문자 클래스
    """
    regex_parts: list[str] = []
    literal: list[str] = []
    wild = False
    i = 0

    while i < len(segment):
        c = segment[i]

        if c == "\\":
            if i + 1 >= len(segment):
                raise PatternSyntaxError(pattern, "trailing escape character '\\'")
            regex_parts.append(re.escape(segment[i + 1]))
            literal.append(segment[i + 1])
            i += 2
            continue

        if c == "*":
            regex_parts.append("[^/]*")
            wild = True
        elif c == "?":
            regex_parts.append("[^/]")
            wild = True
        elif c == "[":
            j = i + 1
            if j < len(segment) and segment[j] in "!^":
                j += 1
            if j < len(segment) and segment[j] == "]":
                j += 1  # 첫 ] 는 리터럴
            while j < len(segment) and segment[j] != "]":
                j += 1
            if j >= len(segment):
                raise PatternSyntaxError(pattern, f"unterminated character class in {segment!r}")

            body = segment[i + 1:j]
            negate = body[:1] in ("!", "^")
            if negate:
                body = body[1:]
            if not body:
                raise PatternSyntaxError(pattern, "empty character class")
            escaped = "".join("\\" + ch if ch in "\\^[]" else ch for ch in body)
            regex_parts.append(f"[{'^' if negate else ''}{escaped}]")
            wild = True
            i = j + 1
            continue
        else:
            regex_parts.append(re.escape(c))
            literal.append(c)
        i += 1

    if not wild:
        return Token(TokenKind.LITERAL, "".join(literal))

    try:
        regex = re.compile("".join(regex_parts), re.DOTALL)
    except re.error as e:
        raise PatternSyntaxError(pattern, f"invalid segment {segment!r}: {e}") from e
    return Token(TokenKind.WILDCARD, segment, regex)


def compile_pattern(pattern: str) -> IgnorePattern:
    """
    패턴 문자열 → IgnorePattern.

    문법:
    - 세그먼트 구분자 "/"
    - *  : 세그먼트 내 임의 문자열 (숨김 파일 포함)
    - ?  : 세그먼트 내 임의 문자 1개
    - [abc], [a-z], [!abc] : 문자 클래스
    - ** : 0개 이상의 세그먼트 (세그먼트 전체여야 함)
    - \\x : x 를 리터럴로
    - 앞의 "/" : 루트 고정, 뒤의 "/" : 디렉터리 전용

    Args:
        pattern: 패턴 문자열

    Returns:
        IgnorePattern

    Raises:
        PatternSyntaxError: 문법 오류
    """
    if not isinstance(pattern, str):
        raise PatternSyntaxError(repr(pattern), "pattern must be a string")
    if not pattern.strip():
        raise PatternSyntaxError(pattern, "pattern is empty")

    body = pattern
    anchored = body.startswith("/")
    if anchored:
        body = body[1:]
    dir_only = body.endswith("/")
    if dir_only:
        body = body[:-1]
    if not body:
        raise PatternSyntaxError(pattern, "pattern has no path segments")

    tokens: list[Token] = []
    for segment in body.split("/"):
        if not segment:
            raise PatternSyntaxError(pattern, "empty path segment")
        if segment in (".", ".."):
            raise PatternSyntaxError(pattern, f"relative segment {segment!r} is not allowed")
        if segment == "**":
            # 연속된 ** 는 하나로
            if not tokens or tokens[-1].kind is not TokenKind.GLOBSTAR:
                tokens.append(GLOBSTAR_TOKEN)
            continue
        if "**" in segment:
            raise PatternSyntaxError(pattern, "'**' must be a whole path segment")
        tokens.append(_compile_segment(segment, pattern))

    return IgnorePattern(
        source=pattern,
        tokens=tuple(tokens),
        anchored=anchored,
        dir_only=dir_only,
    )


# =============================================================================
# Matching
# =============================================================================


def _match_tokens(
    tokens: Sequence[Token],
    segments: Sequence[str],
    anchored: bool = True,
) -> bool:
    """
    토큰 시퀀스가 세그먼트 시퀀스 전체와 일치하는지 (NFA 상태 집합 방식).

    anchored=False 이면 임의의 시작 위치 허용 (접미사 매칭).
    """
    m = len(segments)
    reachable = [False] * (m + 1)
    if anchored:
        reachable[0] = True
    else:
        for si in range(m):
            reachable[si] = True

    for token in tokens:
        nxt = [False] * (m + 1)
        if token.kind is TokenKind.GLOBSTAR:
            seen = False
            for si in range(m + 1):
                seen = seen or reachable[si]
                nxt[si] = seen
        else:
            for si in range(m):
                if reachable[si] and token.matches_segment(segments[si]):
                    nxt[si + 1] = True
        reachable = nxt
        if not any(reachable):
            return False

    return reachable[m]


def split_path(rel_path: str | PurePath) -> tuple[str, ...]:
    """상대 경로 → 세그먼트 튜플 ("." 제거)."""
    path = rel_path if isinstance(rel_path, PurePath) else PurePosixPath(rel_path)
    if path.is_absolute():
        raise ValueError(f"expected a path relative to the walk root, got {rel_path!r}")
    return tuple(p for p in path.parts if p not in ("", "."))


class PatternMatcher:
    """
    ignore 패턴 집합.

    패턴은 OR 결합, 순서 무관. 생성 시 전부 컴파일되므로
    walk 도중 문법 오류가 발생하지 않음.

    Usage:
        matcher = PatternMatcher(["*.log", "node_modules/"])
        matcher.is_excluded("sub/c.log")  # True
    """

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        unique = list(dict.fromkeys(patterns))
        self.patterns: tuple[IgnorePattern, ...] = tuple(compile_pattern(p) for p in unique)

    def __len__(self) -> int:
        return len(self.patterns)

    def __repr__(self) -> str:
        return f"PatternMatcher({[p.source for p in self.patterns]!r})"

    @property
    def sources(self) -> list[str]:
        return [p.source for p in self.patterns]

    def matching_pattern(self, rel_path: str | PurePath, is_dir: bool = False) -> str | None:
        """매칭되는 첫 패턴 문자열 (없으면 None)."""
        if not self.patterns:
            return None
        segments = split_path(rel_path)
        for pattern in self.patterns:
            if pattern.matches(segments, is_dir=is_dir):
                return pattern.source
        return None

    def is_excluded(self, rel_path: str | PurePath, is_dir: bool = False) -> bool:
        """
        경로 제외 여부.

        Args:
            rel_path: walk 루트 기준 상대 경로
            is_dir: 디렉터리 여부 (dir_only 패턴 판정용)

        Returns:
            True if 제외
        """
        return self.matching_pattern(rel_path, is_dir=is_dir) is not None
