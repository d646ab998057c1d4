"""Test fixtures for assetflow tests."""

import json
import shutil
import tempfile
from pathlib import Path

import pytest

from assetflow.utils import DEFAULT_TOOLS


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def project_root(temp_dir, monkeypatch):
    """Create a front-end project tree and make it the working directory."""
    app = temp_dir / "app"
    for sub in ("assets/sass", "assets/js/vendor", "assets/images/icons", "assets/fonts"):
        (app / sub).mkdir(parents=True, exist_ok=True)
    (temp_dir / "test" / "spec").mkdir(parents=True)

    (app / "index.html").write_text(
        "<html>\n<head>\n"
        "  <!-- bower:css -->\n  <!-- endbower -->\n"
        "</head>\n<body>\n"
        "  <!-- bower:js -->\n  <!-- endbower -->\n"
        "</body>\n</html>\n"
    )
    (app / "robots.txt").write_text("User-agent: *\n")
    (app / ".htaccess").write_text("Options -Indexes\n")
    (app / "assets" / "sass" / "main.scss").write_text("// bower:scss\n// endbower\nbody { color: red; }\n")
    (app / "assets" / "sass" / "_vars.scss").write_text("$c: red;\n")
    (app / "assets" / "js" / "main.js").write_text("console.log('main');\n")
    (app / "assets" / "js" / "vendor" / "util.js").write_text("export const x = 1;\n")
    (app / "assets" / "images" / "logo.png").write_bytes(b"\x89PNG-logo")
    (app / "assets" / "images" / "icons" / "star.svg").write_text("<svg/>")
    (app / "assets" / "fonts" / "custom.woff").write_bytes(b"custom-font")
    (temp_dir / "test" / "spec" / "main.spec.js").write_text("describe('x', () => {});\n")

    monkeypatch.chdir(temp_dir)
    return temp_dir


@pytest.fixture
def components(project_root):
    """Install two fake front-end libraries and a manifest listing them."""
    comp = project_root / "bower_components"
    jq = comp / "jquery"
    (jq / "dist").mkdir(parents=True)
    (jq / "dist" / "jquery.js").write_text("/* jquery */\n")
    (jq / "bower.json").write_text(json.dumps({"name": "jquery", "main": "dist/jquery.js"}))

    bs = comp / "bootstrap"
    for sub in ("dist/css", "dist/js", "fonts", "scss"):
        (bs / sub).mkdir(parents=True)
    (bs / "dist" / "css" / "bootstrap.css").write_text("/* bootstrap css */\n")
    (bs / "dist" / "js" / "bootstrap.js").write_text("/* bootstrap js */\n")
    (bs / "fonts" / "glyphicons.woff").write_bytes(b"glyph-font")
    (bs / "scss" / "_bootstrap.scss").write_text("// bootstrap scss\n")
    (bs / ".bower.json").write_text(
        json.dumps(
            {
                "name": "bootstrap",
                "main": [
                    "dist/css/bootstrap.css",
                    "dist/js/bootstrap.js",
                    "fonts/glyphicons.woff",
                    "scss/_bootstrap.scss",
                ],
                "dependencies": {"jquery": ">=1.9"},
            }
        )
    )

    (project_root / "bower.json").write_text(
        json.dumps({"name": "site", "dependencies": {"bootstrap": "~3.3", "jquery": "~2.1"}})
    )
    return comp


@pytest.fixture
def params():
    """Config with every delegated tool disabled."""
    return {"tools": {name: None for name in DEFAULT_TOOLS}}


class Recorder:
    """Collects task body invocations in order."""

    def __init__(self):
        self.calls = []
        self.events = []

    def body(self, name, fail=None):
        def fn(params=None, ctx=None):
            self.events.append(f"start:{name}")
            self.calls.append(name)
            if fail is not None:
                raise fail
            self.events.append(f"end:{name}")

        return fn


@pytest.fixture
def recorder():
    return Recorder()
