"""Tests for the deterministic rewrite rules."""

import json

from liberation.config import LiberationConfig
from liberation.rewrite import Rewriter, removed_dependencies, rewrite_file


class TestManifestRewrites:
    """Test package.json and requirements.txt rewrites."""

    def test_single_dependency_note(self, example_config, sample_package_json):
        """Removing one proprietary dependency yields exactly one note."""
        result = rewrite_file("package.json", sample_package_json, example_config)

        assert result.notes == ("Dependency removed: proprietary-hook",)
        data = json.loads(result.content)
        assert data["dependencies"] == {"react": "^18.2.0"}
        assert data["scripts"] == {"dev": "vite", "build": "vite build"}
        assert result.content.endswith("}\n")

    def test_platform_scripts_removed(self, lovable_project):
        result = rewrite_file(
            "package.json", lovable_project["package.json"].text, LiberationConfig.default()
        )

        data = json.loads(result.content)
        assert "lovable-tagger" not in data["devDependencies"]
        assert "tag" not in data["scripts"]
        assert removed_dependencies(result.notes) == ["lovable-tagger"]
        assert "Script removed: tag" in result.notes

    def test_scripts_mentioning_platform_words_kept(self):
        """Only scripts that run a platform package are removed."""
        content = json.dumps({
            "name": "weather",
            "scripts": {
                "release": "npm version v0.2.0 && git push --tags",
                "cursor": "node scripts/cursor-trail.js",
                "bolt": "vite build --mode bolt",
                "tag": "npx lovable-tagger@1.1.7 --watch",
                "sync": "vite build; @lovable/cli@2.0.0 push",
            },
        }, indent=2) + "\n"
        result = rewrite_file("package.json", content, LiberationConfig.default())

        scripts = json.loads(result.content)["scripts"]
        assert set(scripts) == {"release", "cursor", "bolt"}
        assert result.notes == ("Script removed: tag", "Script removed: sync")

    def test_invalid_package_json_untouched(self, example_config):
        result = rewrite_file("package.json", "{ broken", example_config)
        assert result.content == "{ broken"
        assert not result.changed

    def test_requirements(self):
        content = "flask==3.0.0\nreplit==3.6.2\nrequests\n"
        result = rewrite_file("requirements.txt", content, LiberationConfig.default())

        assert result.content == "flask==3.0.0\nrequests\n"
        assert result.notes == ("Dependency removed: replit",)


class TestCodeRewrites:
    """Test bundler config, markup and source rewrites."""

    def setup_method(self):
        self.rewriter = Rewriter(LiberationConfig.default())

    def test_bundler_plugin_removed(self, lovable_project):
        result = self.rewriter.rewrite("vite.config.ts", lovable_project["vite.config.ts"].text)

        assert "lovable-tagger" not in result.content
        assert "componentTagger" not in result.content
        assert "mode === 'development'" not in result.content
        assert "react()," in result.content
        assert "Import removed: lovable-tagger" in result.notes
        assert "Plugin removed: componentTagger" in result.notes

    def test_entry_html_tags_removed(self, lovable_project):
        result = self.rewriter.rewrite("index.html", lovable_project["index.html"].text)

        assert "gpteng" not in result.content
        assert 'content="Lovable"' not in result.content
        assert '<meta charset="UTF-8" />' in result.content
        assert '<script type="module" src="/src/main.tsx"></script>' in result.content
        assert "Script tag removed: Lovable" in result.notes
        assert "Meta tag removed: Lovable" in result.notes

    def test_source_import_rewritten(self, lovable_project):
        result = self.rewriter.rewrite("src/App.tsx", lovable_project["src/App.tsx"].text)

        assert 'from "@/lib/compat/use-mobile";' in result.content
        assert "@lovable/" not in result.content
        assert "// @lovable" not in result.content
        assert "data-lov-id" not in result.content
        assert '<div className="app">' in result.content
        assert result.notes == (
            "Import rewritten: @lovable/hooks/use-mobile -> @/lib/compat/use-mobile",
            "Comment markers removed: 1",
            "Data attribute removed: data-lov-id",
        )

    def test_unmapped_import_removed(self):
        content = 'import { track } from "@lovable/analytics";\nconst x = 1;\n'
        result = self.rewriter.rewrite("src/track.ts", content)

        assert result.content == "const x = 1;\n"
        assert result.notes == ("Import removed: @lovable/analytics",)

    def test_everyday_markup_untouched(self):
        """Platform words in descriptions, paths and attribute names are not signatures."""
        content = (
            "<html><head>\n"
            '<meta name="description" content="A lightning bolt weather app" />\n'
            '<link rel="stylesheet" href="/css/cursor-trail.css" />\n'
            '<script src="/js/replit-badge-free.js"></script>\n'
            "</head><body>\n"
            '<div data-cursor="pointer" data-lovely="yes">forecast</div>\n'
            "</body></html>\n"
        )
        result = self.rewriter.rewrite("index.html", content)

        assert result.content == content
        assert result.notes == ()

    def test_prefixed_data_attributes_removed(self):
        content = 'export const A = () => <p data-lovable-trace="1" data-cursor="x" data-lov-name="A" />;\n'
        result = self.rewriter.rewrite("src/A.tsx", content)

        assert result.content == 'export const A = () => <p data-cursor="x" />;\n'
        assert result.notes == (
            "Data attribute removed: data-lovable-trace",
            "Data attribute removed: data-lov-name",
        )

    def test_require_removed(self):
        content = "const tagger = require('lovable-tagger');\nmodule.exports = {};\n"
        result = self.rewriter.rewrite("src/legacy.js", content)
        assert result.content == "module.exports = {};\n"

    def test_inline_comment_marker_keeps_code(self):
        content = "const a = 1; /* @lovable auto */\nconst b = 2;\n"
        result = self.rewriter.rewrite("src/a.ts", content)
        assert result.content == "const a = 1;\nconst b = 2;\n"

    def test_other_roles_pass_through(self):
        content = "Built with Lovable: https://lovable.dev\n"
        result = self.rewriter.rewrite("README.md", content)
        assert result.content == content
        assert not result.changed


class TestIdempotence:
    """A second pass over rewritten output changes nothing."""

    def test_every_file_is_stable(self, lovable_project):
        rewriter = Rewriter(LiberationConfig.default())
        for entry in lovable_project.entries():
            if not entry.is_text:
                continue
            first = rewriter.rewrite(entry.path, entry.text)
            second = rewriter.rewrite(entry.path, first.content)
            assert second.content == first.content, entry.path
            assert second.notes == (), entry.path

    def test_clean_file_returned_verbatim(self, clean_project):
        rewriter = Rewriter(LiberationConfig.default())
        for entry in clean_project.entries():
            result = rewriter.rewrite(entry.path, entry.text)
            assert result.content == entry.text
