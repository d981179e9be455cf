"""
stencil CLI - 디렉터리 템플릿 캡처/복제

사용법:
    # 현재 디렉터리를 템플릿으로 캡처
    stencil make webapp -d "Flask skeleton" -i "*.pyc" -i ".venv/"

    # 템플릿 목록 / 트리 보기
    stencil list
    stencil tree webapp

    # ./my-app 으로 복제 (-n 생략 시 템플릿 이름 사용)
    stencil new webapp -n my-app

    # 삭제 (확인 프롬프트)
    stencil remove webapp

    # registry ↔ 저장소 정합성 점검 및 정리
    stencil doctor --fix

환경변수:
    STENCIL_HOME  저장소 루트 (기본: ~/.config/stencil)
"""

import argparse
import logging
import re
import signal
import sys
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path, PurePosixPath

from stencil import __version__
from stencil.app.config import load_config
from stencil.app.service import TemplateService, describe_error, exit_code_for
from stencil.domain.constants import EXIT_CANCELLED, EXIT_OK, EXIT_USAGE
from stencil.domain.errors import StencilError

logger = logging.getLogger(__name__)

_YES = re.compile(r"^y(es)?$", re.IGNORECASE)


# =============================================================================
# Helpers
# =============================================================================


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


@contextmanager
def _cooperative_interrupt() -> Generator[Callable[[], bool], None, None]:
    """
    복사 중 Ctrl-C → 즉시 종료 대신 다음 엔트리 경계에서 취소.

    메인 스레드가 아니면 signal 을 바꾸지 않음 (기본 KeyboardInterrupt 유지).
    """
    requested = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield requested.is_set
        return

    def handler(signum, frame):
        requested.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield requested.is_set
    finally:
        signal.signal(signal.SIGINT, previous)


def _progress_printer(verbosity: int) -> Callable[[PurePosixPath], None] | None:
    if verbosity < 1:
        return None

    def show(rel: PurePosixPath) -> None:
        print(f"  {rel.as_posix()}")

    return show


def _confirm(prompt: str) -> bool:
    """[y/N] 확인. 기본값 No, EOF 도 No."""
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return bool(_YES.match(answer.strip()))


# =============================================================================
# Commands
# =============================================================================


def cmd_list(service: TemplateService, args: argparse.Namespace) -> int:
    templates = service.list_templates()
    if not templates:
        print("No templates yet. Create one with 'stencil make NAME'.")
        return EXIT_OK

    for template in templates:
        created = template.created_at[:10] if template.created_at else "?"
        print(template.name)
        print(f"  {template.description or 'No description.'}")
        print(f"  created {created} from {template.source_path}")
    return EXIT_OK


def cmd_tree(service: TemplateService, args: argparse.Namespace) -> int:
    print(f"{args.template}/")
    for rel in service.tree(args.template):
        is_dir = rel.endswith("/")
        parts = rel.rstrip("/").split("/")
        print("  " * len(parts) + parts[-1] + ("/" if is_dir else ""))
    return EXIT_OK


def cmd_make(service: TemplateService, args: argparse.Namespace) -> int:
    source = Path(args.location).expanduser() if args.location else Path.cwd()

    with _cooperative_interrupt() as cancelled:
        template = service.capture(
            args.name,
            source,
            patterns=args.ignore or [],
            description=args.description,
            use_default_ignore=not args.no_default_ignore,
            overwrite=args.force,
            cancel_check=cancelled,
            progress=_progress_printer(args.verbose),
        )

    print(f"New template '{template.name}' was created.")
    print(f"Call 'stencil new {template.name}' to create a new instance of this template.")
    return EXIT_OK


def cmd_new(service: TemplateService, args: argparse.Namespace) -> int:
    location = Path(args.location).expanduser() if args.location else Path.cwd()
    dest = location / (args.name or args.template)

    with _cooperative_interrupt() as cancelled:
        stats = service.instantiate(
            args.template,
            dest,
            overwrite=args.force,
            cancel_check=cancelled,
            progress=_progress_printer(args.verbose),
        )

    print(
        f"Created new instance of '{args.template}' in {dest} "
        f"({stats.files_copied} files, {stats.bytes_copied} bytes)."
    )
    return EXIT_OK


def cmd_remove(service: TemplateService, args: argparse.Namespace) -> int:
    # 존재 확인을 먼저 (없는 템플릿에 대해 묻지 않음)
    service.get(args.template)

    if not args.yes and not _confirm(f"Are you sure you want to delete '{args.template}'?"):
        print("Aborted.")
        return EXIT_OK

    service.remove(args.template)
    print(f"Template '{args.template}' deleted.")
    return EXIT_OK


def cmd_describe(service: TemplateService, args: argparse.Namespace) -> int:
    template = service.describe(args.template, args.text)
    print(f"{template.name}: {template.description or 'No description.'}")
    return EXIT_OK


def cmd_doctor(service: TemplateService, args: argparse.Namespace) -> int:
    report = service.verify()
    if report.is_consistent:
        print("Registry and template storage are consistent.")
        return EXIT_OK

    for name in report.missing_storage:
        print(f"missing storage: '{name}' is registered but its directory is gone")
    for path in report.orphaned_storage:
        print(f"orphaned storage: {path} has no registry entry")
    for path in report.leftovers:
        print(f"leftover: {path} (interrupted capture or removal)")

    if not args.fix:
        print("Run 'stencil doctor --fix' to clean up.")
        return EXIT_USAGE

    removed = service.prune(drop_missing=args.drop_missing)
    print(f"Cleaned up {len(removed)} item(s).")
    return EXIT_OK


def cmd_version(service: TemplateService | None, args: argparse.Namespace) -> int:
    print(f"stencil {__version__}")
    return EXIT_OK


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stencil",
        description="디렉터리를 템플릿으로 캡처하고 새 위치에 복제",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="로그 상세도 (-v: INFO + 복사 경로 출력, -vv: DEBUG)",
    )
    parser.add_argument(
        "--root",
        type=str,
        help="저장소 루트 (기본: $STENCIL_HOME 또는 ~/.config/stencil)",
    )
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    p = sub.add_parser("list", help="템플릿 목록")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("tree", help="템플릿 트리 구조 보기")
    p.add_argument("template", help="템플릿 이름")
    p.set_defaults(func=cmd_tree)

    p = sub.add_parser("make", help="디렉터리를 템플릿으로 캡처")
    p.add_argument("name", help="새 템플릿 이름")
    p.add_argument("-l", "--location", help="캡처할 디렉터리 (기본: 현재 디렉터리)")
    p.add_argument("-d", "--description", help="템플릿 설명")
    p.add_argument(
        "-i",
        "--ignore",
        action="append",
        metavar="PATTERN",
        help="제외 패턴 (반복 가능, 예: -i '*.log' -i 'node_modules/')",
    )
    p.add_argument(
        "--no-default-ignore",
        action="store_true",
        help="config.yaml 의 default_ignore 적용 안 함",
    )
    p.add_argument("--force", action="store_true", help="같은 이름의 템플릿 교체")
    p.set_defaults(func=cmd_make)

    p = sub.add_parser("new", help="템플릿으로 새 디렉터리 생성")
    p.add_argument("template", help="사용할 템플릿")
    p.add_argument("-n", "--name", help="새 디렉터리 이름 (기본: 템플릿 이름)")
    p.add_argument("-l", "--location", help="생성 위치 (기본: 현재 디렉터리)")
    p.add_argument("--force", action="store_true", help="비어있지 않은 대상에 덮어쓰기")
    p.set_defaults(func=cmd_new)

    p = sub.add_parser("remove", aliases=["delete"], help="템플릿 삭제")
    p.add_argument("template", help="삭제할 템플릿")
    p.add_argument("-y", "--yes", action="store_true", help="확인 없이 삭제")
    p.set_defaults(func=cmd_remove)

    p = sub.add_parser("describe", help="템플릿 설명 변경")
    p.add_argument("template", help="템플릿 이름")
    p.add_argument("text", nargs="?", default="", help="새 설명 (생략 시 삭제)")
    p.set_defaults(func=cmd_describe)

    p = sub.add_parser("doctor", help="registry 와 저장소 정합성 점검")
    p.add_argument("--fix", action="store_true", help="고아 저장소/잔여물 삭제")
    p.add_argument(
        "--drop-missing",
        action="store_true",
        help="--fix 와 함께: 저장소가 사라진 registry 항목도 제거",
    )
    p.set_defaults(func=cmd_doctor)

    p = sub.add_parser("version", help="버전 출력")
    p.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.func is cmd_version:
        return cmd_version(None, args)

    try:
        root = Path(args.root).expanduser() if args.root else None
        config = load_config(root)
        service = TemplateService.from_config(config)
        return args.func(service, args)
    except StencilError as e:
        print(f"Error: {describe_error(e)}", file=sys.stderr)
        logger.debug(f"{e.code}: {e.to_dict()}")
        return exit_code_for(e)
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
