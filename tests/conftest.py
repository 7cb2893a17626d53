"""Pytest configuration and fixtures."""

import io
import logging
import zipfile

import pytest

from liberation.config import LiberationConfig, PlatformSignature
from liberation.models import ProjectSnapshot


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by CLI runs so they never outlive their streams."""
    yield
    logger = logging.getLogger("liberation")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True


@pytest.fixture
def sample_requirements():
    """Sample requirements.txt content for testing."""
    return "fastapi==0.85.0\nuvicorn>=0.18.0"


@pytest.fixture
def sample_package_json():
    """Sample package.json with one proprietary dependency."""
    return """{
  "name": "test-project",
  "scripts": {
    "dev": "vite",
    "build": "vite build"
  },
  "dependencies": {
    "proprietary-hook": "^1.0.0",
    "react": "^18.2.0"
  }
}
"""


@pytest.fixture
def example_config():
    """Config with a single, fictional platform."""
    return LiberationConfig(
        platforms=(
            PlatformSignature(
                name="Example",
                packages=("proprietary-hook", "@example/"),
                import_prefixes=("@example/", "proprietary-hook"),
                cdn_hosts=("proprietary-cdn.example",),
                files=(".example", "example.config.json"),
                keywords=("exampleplatform",),
                plugin_modules=("example-tagger",),
                data_attributes=("data-example-",),
            ),
        ),
        import_rewrites={"@example/hooks/use-mobile": "@/lib/compat/use-mobile"},
    )


@pytest.fixture
def lovable_project():
    """A small project exported from Lovable."""
    return ProjectSnapshot.from_mapping({
        "package.json": """{
  "name": "vite_react_shadcn_ts",
  "scripts": {
    "dev": "vite",
    "build": "vite build",
    "tag": "lovable-tagger --watch"
  },
  "dependencies": {
    "react": "^18.3.1"
  },
  "devDependencies": {
    "lovable-tagger": "^1.1.7",
    "vite": "^5.4.1"
  }
}
""",
        "vite.config.ts": """import { defineConfig } from "vite";
import react from "@vitejs/plugin-react-swc";
import path from "path";
import { componentTagger } from "lovable-tagger";

export default defineConfig(({ mode }) => ({
  plugins: [
    react(),
    mode === 'development' &&
    componentTagger(),
  ].filter(Boolean),
  resolve: {
    alias: { "@": path.resolve(__dirname, "./src") },
  },
}));
""",
        "index.html": """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="author" content="Lovable" />
    <title>demo</title>
  </head>
  <body>
    <div id="root"></div>
    <script src="https://cdn.gpteng.co/gptengineer.js" type="module"></script>
    <script type="module" src="/src/main.tsx"></script>
  </body>
</html>
""",
        "src/App.tsx": """import { useIsMobile } from "@lovable/hooks/use-mobile";
import { Button } from "@/components/ui/button";

// @lovable generated component
export default function App() {
  const isMobile = useIsMobile();
  return <div data-lov-id="app-root" className="app">{isMobile ? "m" : "d"}</div>;
}
""",
        "src/main.tsx": """import { createRoot } from "react-dom/client";
import App from "./App";

createRoot(document.getElementById("root")!).render(<App />);
""",
        ".lovable/config.json": "{}",
        "public/logo.png": b"\x89PNG\r\n\x1a\n\x00\x00",
    })


@pytest.fixture
def clean_project():
    """A project without any platform signals."""
    return ProjectSnapshot.from_mapping({
        "package.json": '{"name": "plain", "dependencies": {"react": "^18.2.0"}}\n',
        "index.html": "<html><body><div id=\"root\"></div></body></html>\n",
        "src/main.ts": "import { createRoot } from 'react-dom/client';\nconsole.log('hi');\n",
    })


def build_zip(files: dict, root: str | None = "project") -> bytes:
    """ZIP bytes with ``files`` placed under ``root/``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for path, content in files.items():
            name = f"{root}/{path}" if root else path
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def zip_builder():
    return build_zip
