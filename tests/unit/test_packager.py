"""Tests for archive packaging."""

import io
import zipfile
from datetime import datetime, timezone

import pytest

from liberation.config import LiberationConfig
from liberation.errors import PackagingError
from liberation.models import AnalysisResult, CleaningStats, Polyfill, ProjectSnapshot
from liberation.packager import (
    LocalArchiveStore,
    Packager,
    render_env_template,
    render_report,
    safe_project_name,
)

ARTIFACTS = {"Dockerfile", "nginx.conf", ".env.example", "LIBERATION_REPORT.md"}


def read_archive(data: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


class TestArchive:
    """Archive layout and storage."""

    def setup_method(self):
        self.config = LiberationConfig.default()

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path, clean_project):
        """The stored archive holds every file plus the four artifacts under one root."""
        store = LocalArchiveStore(tmp_path)
        packager = Packager(self.config, store)

        ref = await packager.package(
            clean_project,
            project_name="my app",
            analysis=AnalysisResult(score=100),
            stats=CleaningStats(),
            score_after=100,
        )
        entries = read_archive(store.get(ref))

        expected = {f"my-app/{path}" for path in clean_project.paths()}
        expected |= {f"my-app/{name}" for name in ARTIFACTS}
        assert set(entries) == expected
        assert entries["my-app/src/main.ts"] == clean_project["src/main.ts"].content.encode()
        assert b"nginx:alpine" in entries["my-app/Dockerfile"]

    def test_binary_files_preserved(self):
        files = ProjectSnapshot.from_mapping({"public/logo.png": b"\x89PNG\x00\xff"})
        data = Packager(self.config, LocalArchiveStore("unused")).build_archive(files, "p", "report")
        assert read_archive(data)["p/public/logo.png"] == b"\x89PNG\x00\xff"

    def test_generated_artifacts_override_project_files(self):
        files = ProjectSnapshot.from_mapping({"Dockerfile": "FROM scratch\n", "index.html": "<html></html>"})
        data = Packager(self.config, LocalArchiveStore("unused")).build_archive(files, "p", "report")

        entries = read_archive(data)
        assert b"FROM scratch" not in entries["p/Dockerfile"]
        assert len([name for name in entries if name == "p/Dockerfile"]) == 1

    def test_nginx_conf_lists_static_extensions(self):
        config = LiberationConfig(static_extensions=("js", "css"))
        nginx = Packager(config, LocalArchiveStore("unused")).artifacts(ProjectSnapshot(), "")["nginx.conf"]
        assert r"location ~* \.(js|css)$ {" in nginx
        assert "try_files $uri $uri/ /index.html;" in nginx

    @pytest.mark.asyncio
    async def test_store_failure(self, clean_project):
        class BrokenStore:
            def put(self, data):
                raise OSError("disk full")

            def get(self, ref):
                raise KeyError(ref)

        packager = Packager(self.config, BrokenStore())
        with pytest.raises(PackagingError, match="disk full"):
            await packager.package(
                clean_project,
                project_name="p",
                analysis=AnalysisResult(score=100),
                stats=CleaningStats(),
                score_after=100,
            )


class TestLocalArchiveStore:
    def test_put_get(self, tmp_path):
        store = LocalArchiveStore(tmp_path / "archives")
        ref = store.put(b"zip bytes")
        assert store.get(ref) == b"zip bytes"

    def test_unknown_ref(self, tmp_path):
        store = LocalArchiveStore(tmp_path)
        with pytest.raises(KeyError):
            store.get("0" * 32)
        with pytest.raises(KeyError):
            store.get("../../etc/passwd")


class TestRendering:
    """Generated text artifacts."""

    def test_env_template(self):
        files = ProjectSnapshot.from_mapping({
            "src/api.ts": "fetch(import.meta.env.VITE_API_URL);\nconst k = process.env.SECRET_KEY;\n",
            "server/app.py": 'DB = os.environ.get("DATABASE_URL")\n',
            ".env.local": "export LOCAL_ONLY=1\n",
            "logo.png": b"process.env.NOT_TEXT",
        })
        assert render_env_template(files) == (
            "# Environment variables referenced by this project\n"
            "DATABASE_URL=\n"
            "LOCAL_ONLY=\n"
            "SECRET_KEY=\n"
            "VITE_API_URL=\n"
        )

    def test_env_template_destructured_reads(self):
        files = ProjectSnapshot.from_mapping({
            "src/config.ts": (
                "const { VITE_X, VITE_Y: y } = import.meta.env;\n"
                "const {\n  PORT = 3000,\n  ...rest\n} = process.env;\n"
                'const key = import.meta.env["VITE_KEY"];\n'
            ),
            "src/theme.ts": "const { primary, accent } = palette;\n",
        })
        assert render_env_template(files) == (
            "# Environment variables referenced by this project\n"
            "PORT=\n"
            "VITE_KEY=\n"
            "VITE_X=\n"
            "VITE_Y=\n"
        )

    def test_env_template_without_references(self, clean_project):
        assert render_env_template(clean_project) == "# Environment variables referenced by this project\n"

    def test_report(self):
        analysis = AnalysisResult(score=32, detected_platform="Lovable", recommendations=["Remove lovable-tagger"])
        report = render_report(
            "demo",
            analysis,
            CleaningStats(files_removed=1, polyfills_generated=1),
            score_after=100,
            removed_dependencies=["lovable-tagger"],
            polyfills=[Polyfill("useIsMobile", "src/lib/compat/use-mobile.ts", "")],
            generated_at=datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc),
        )

        assert report.startswith("# Liberation report: demo\n")
        assert "Generated 2024-01-02 03:04 UTC." in report
        assert "- Before: 32/100" in report
        assert "- After: 100/100" in report
        assert "- Detected platform: Lovable" in report
        assert "| Polyfills generated | 1 |" in report
        assert "- `lovable-tagger`" in report
        assert "- `src/lib/compat/use-mobile.ts` (useIsMobile)" in report
        assert "## Files that could not be retrieved" not in report

    def test_safe_project_name(self):
        assert safe_project_name("My App!") == "My-App"
        assert safe_project_name("../..") == "project"
        assert safe_project_name(None) == "project"
