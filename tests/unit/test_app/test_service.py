"""
test_service.py - TemplateService + 에러 메시지/종료 코드 테스트
"""

from pathlib import Path

import pytest

from stencil.app.config import StencilConfig
from stencil.app.service import TemplateService, describe_error, exit_code_for
from stencil.domain.constants import EXIT_CANCELLED, EXIT_CONFIG, EXIT_ERROR, EXIT_IOERR, EXIT_USAGE
from stencil.domain.errors import (
    CopyIOError,
    ErrorCodes,
    RegistryCorruptError,
    StencilError,
    TemplateExistsError,
    TemplateNotFoundError,
)

# =============================================================================
# TemplateService
# =============================================================================


class TestTemplateService:
    """서비스 → registry 위임 테스트."""

    def test_capture_applies_default_ignore(self, stencil_root: Path, sample_tree: Path):
        config = StencilConfig(root=stencil_root, default_ignore=["node_modules/**"])
        service = TemplateService.from_config(config)

        template = service.capture("web", sample_tree, patterns=["*.log"])

        assert template.patterns == ["node_modules/**", "*.log"]
        assert not (template.storage_path / "node_modules").exists()
        assert not (template.storage_path / "build.log").exists()

    def test_capture_without_default_ignore(self, stencil_root: Path, sample_tree: Path):
        config = StencilConfig(root=stencil_root, default_ignore=["node_modules/**"])
        service = TemplateService.from_config(config)

        template = service.capture("web", sample_tree, use_default_ignore=False)

        assert template.patterns == []
        assert (template.storage_path / "node_modules/x/y.txt").exists()

    def test_from_config_passes_lock_timeout(self, stencil_root: Path):
        service = TemplateService.from_config(StencilConfig(root=stencil_root, lock_timeout=3.0))

        assert service.registry.root == stencil_root
        assert service.registry.lock_timeout == 3.0

    def test_instantiate_uses_config_options(self, stencil_root: Path, sample_tree: Path, tmp_path: Path):
        config = StencilConfig(root=stencil_root, keep_empty_dirs=False)
        service = TemplateService.from_config(config)
        service.capture("web", sample_tree, patterns=["*.log", "node_modules/**"])
        dest = tmp_path / "out"

        service.instantiate("web", dest)

        assert not (dest / "empty").exists()
        assert not (dest / "logs").exists()
        assert (dest / "src/app.py").exists()

    def test_lifecycle(self, service: TemplateService, sample_tree: Path):
        service.capture("web", sample_tree, description="first")
        assert [t.name for t in service.list_templates()] == ["web"]

        service.describe("web", "second")
        assert service.get("web").description == "second"
        assert "README.md" in service.tree("web")
        assert service.verify().is_consistent

        service.remove("web")
        assert service.list_templates() == []
        assert service.prune() == []


# =============================================================================
# describe_error / exit_code_for
# =============================================================================


class TestErrorReporting:
    """에러 → 메시지/종료 코드."""

    def test_not_found_message_has_hint(self):
        text = describe_error(TemplateNotFoundError("web"))

        assert "Template 'web' not found" in text
        assert "stencil list" in text

    def test_partial_copy_reported(self, tmp_path: Path):
        err = CopyIOError(
            tmp_path / "a.txt",
            "Failed to copy file",
            dest_root=tmp_path / "dst",
            partial=True,
        )

        text = describe_error(err)

        assert "Failed to copy file" in text
        assert str(tmp_path / "dst") in text

    def test_message_without_hint(self):
        err = CopyIOError("/x", "Cannot read directory '/x'")

        assert describe_error(err) == "Cannot read directory '/x'"

    @pytest.mark.parametrize(
        ("err", "expected"),
        [
            (TemplateNotFoundError("a"), EXIT_USAGE),
            (TemplateExistsError("a"), EXIT_USAGE),
            (RegistryCorruptError(message="bad"), EXIT_CONFIG),
            (CopyIOError("/x", "boom"), EXIT_IOERR),
            (StencilError(ErrorCodes.COPY_CANCELLED, "stop"), EXIT_CANCELLED),
            (StencilError("SOMETHING_NEW", "?"), EXIT_ERROR),
        ],
    )
    def test_exit_codes(self, err: StencilError, expected: int):
        assert exit_code_for(err) == expected
