"""
test_matcher.py - ignore 패턴 매처 테스트

검증:
- 토큰 종류: LITERAL / WILDCARD / GLOBSTAR
- * 는 세그먼트 경계를 넘지 않음, ** 는 0개 이상 세그먼트
- 접미사 매칭 (앞에 / 없는 패턴), 루트 고정 (/ 로 시작), 디렉터리 전용 (/ 로 끝)
- 잘못된 패턴은 생성 시점에 PatternSyntaxError
"""

from pathlib import PurePosixPath

import pytest

from stencil.core.matcher import (
    PatternMatcher,
    TokenKind,
    compile_pattern,
)
from stencil.domain.errors import ErrorCodes, PatternSyntaxError

# =============================================================================
# compile_pattern 테스트
# =============================================================================


class TestCompilePattern:
    """패턴 → 토큰 컴파일 테스트."""

    def test_token_kinds(self):
        """리터럴/와일드카드/globstar 구분."""
        pattern = compile_pattern("src/*.py/**")

        assert [t.kind for t in pattern.tokens] == [
            TokenKind.LITERAL,
            TokenKind.WILDCARD,
            TokenKind.GLOBSTAR,
        ]
        assert pattern.tokens[0].text == "src"

    def test_consecutive_globstars_collapse(self):
        pattern = compile_pattern("a/**/**/b")

        assert [t.kind for t in pattern.tokens] == [
            TokenKind.LITERAL,
            TokenKind.GLOBSTAR,
            TokenKind.LITERAL,
        ]

    def test_anchored_and_dir_only_flags(self):
        pattern = compile_pattern("/build/")

        assert pattern.anchored is True
        assert pattern.dir_only is True
        assert [t.text for t in pattern.tokens] == ["build"]

    def test_token_segment_matching(self):
        """토큰 종류별 세그먼트 매칭: 리터럴은 정확히, 와일드카드는 regex, globstar 는 항상."""
        literal, wildcard, globstar = compile_pattern("src/*.py/**").tokens

        assert literal.matches_segment("src")
        assert not literal.matches_segment("src2")
        assert wildcard.regex is not None
        assert wildcard.matches_segment("app.py")
        assert wildcard.matches_segment(".py")
        assert not wildcard.matches_segment("app.pyc")
        assert globstar.matches_segment("anything")

    def test_escaped_wildcard_is_literal(self):
        """\\* 는 리터럴 별표."""
        pattern = compile_pattern("\\*.txt")

        assert pattern.tokens[0].kind == TokenKind.LITERAL
        assert pattern.tokens[0].text == "*.txt"

    @pytest.mark.parametrize(
        "bad",
        [
            "",
            "   ",
            "/",
            "a//b",
            "a**",
            "**b/c",
            "../x",
            "./x",
            "[abc",
            "[]",
            "abc\\",
        ],
    )
    def test_malformed_patterns_fail_fast(self, bad: str):
        """문법 오류 → PatternSyntaxError (패턴 문자열 포함)."""
        with pytest.raises(PatternSyntaxError) as exc_info:
            compile_pattern(bad)

        assert exc_info.value.code == ErrorCodes.PATTERN_SYNTAX
        assert exc_info.value.pattern == bad
        assert exc_info.value.reason

    def test_non_string_pattern(self):
        with pytest.raises(PatternSyntaxError):
            compile_pattern(None)  # type: ignore[arg-type]


# =============================================================================
# PatternMatcher 테스트
# =============================================================================


class TestPatternMatcher:
    """PatternMatcher.is_excluded 테스트."""

    def test_empty_set_excludes_nothing(self):
        matcher = PatternMatcher([])

        assert len(matcher) == 0
        assert not matcher.is_excluded("a.txt")
        assert not matcher.is_excluded("node_modules", is_dir=True)

    def test_star_matches_suffix_anywhere(self):
        """*.log 는 하위 디렉터리의 .log 도 매칭."""
        matcher = PatternMatcher(["*.log"])

        assert matcher.is_excluded("b.log")
        assert matcher.is_excluded("sub/c.log")
        assert matcher.is_excluded("a/b/c/d.log")
        assert not matcher.is_excluded("a.txt")
        assert not matcher.is_excluded("b.log.txt")

    def test_star_does_not_cross_segments(self):
        matcher = PatternMatcher(["/src/*.py"])

        assert matcher.is_excluded("src/app.py")
        assert not matcher.is_excluded("src/pkg/mod.py")

    def test_star_matches_dotfiles(self):
        matcher = PatternMatcher(["*"])

        assert matcher.is_excluded(".env")

    def test_globstar_matches_zero_or_more_segments(self):
        matcher = PatternMatcher(["/src/**/*.py"])

        assert matcher.is_excluded("src/app.py")
        assert matcher.is_excluded("src/pkg/mod.py")
        assert matcher.is_excluded("src/a/b/c/mod.py")
        assert not matcher.is_excluded("lib/app.py")

    def test_globstar_in_middle(self):
        matcher = PatternMatcher(["a/**/b"])

        assert matcher.is_excluded("a/b")
        assert matcher.is_excluded("a/x/y/b")
        assert not matcher.is_excluded("a/x/c")

    def test_trailing_globstar_matches_directory_itself(self):
        """node_modules/** 는 node_modules 디렉터리 자체도 매칭 (subtree 통째로 제외)."""
        matcher = PatternMatcher(["node_modules/**"])

        assert matcher.is_excluded("node_modules", is_dir=True)
        assert matcher.is_excluded("node_modules/x/y.txt")
        assert matcher.is_excluded("pkg/node_modules", is_dir=True)
        assert not matcher.is_excluded("src/modules.txt")

    def test_anchored_pattern_matches_root_only(self):
        matcher = PatternMatcher(["/build"])

        assert matcher.is_excluded("build", is_dir=True)
        assert not matcher.is_excluded("sub/build", is_dir=True)

    def test_unanchored_multi_segment_pattern_matches_suffix(self):
        matcher = PatternMatcher(["src/*.py"])

        assert matcher.is_excluded("src/app.py")
        assert matcher.is_excluded("lib/src/app.py")
        assert not matcher.is_excluded("src/app.txt")

    def test_dir_only_pattern(self):
        matcher = PatternMatcher(["build/"])

        assert matcher.is_excluded("build", is_dir=True)
        assert matcher.is_excluded("sub/build", is_dir=True)
        assert not matcher.is_excluded("build", is_dir=False)

    def test_question_mark_and_char_class(self):
        matcher = PatternMatcher(["file?.txt", "[ab].md", "[!xy].cfg"])

        assert matcher.is_excluded("file1.txt")
        assert not matcher.is_excluded("file10.txt")
        assert matcher.is_excluded("a.md")
        assert not matcher.is_excluded("c.md")
        assert matcher.is_excluded("z.cfg")
        assert not matcher.is_excluded("x.cfg")

    def test_patterns_are_or_combined(self):
        matcher = PatternMatcher(["*.log", "*.tmp"])

        assert matcher.is_excluded("a.log")
        assert matcher.is_excluded("b.tmp")
        assert not matcher.is_excluded("c.txt")

    def test_duplicates_removed(self):
        matcher = PatternMatcher(["*.log", "*.log"])

        assert matcher.sources == ["*.log"]

    def test_matching_pattern_reports_source(self):
        matcher = PatternMatcher(["*.tmp", "*.log"])

        assert matcher.matching_pattern("x/y.log") == "*.log"
        assert matcher.matching_pattern("x/y.txt") is None

    def test_accepts_pure_paths(self):
        matcher = PatternMatcher(["*.log"])

        assert matcher.is_excluded(PurePosixPath("sub/c.log"))

    def test_absolute_path_rejected(self):
        matcher = PatternMatcher(["*.log"])

        with pytest.raises(ValueError):
            matcher.is_excluded("/abs/c.log")

    def test_root_path_never_excluded(self):
        matcher = PatternMatcher(["**"])

        assert not matcher.is_excluded(".")
        assert matcher.is_excluded("anything/at/all")

    def test_construction_fails_on_any_bad_pattern(self):
        """하나라도 잘못되면 생성 실패 (walk 도중이 아님)."""
        with pytest.raises(PatternSyntaxError) as exc_info:
            PatternMatcher(["*.log", "a//b"])

        assert exc_info.value.pattern == "a//b"
