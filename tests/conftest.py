"""Shared pytest fixtures for sitebuild tests."""
import io
import socket
import time
import urllib.error
import urllib.request
from pathlib import Path

import pytest
from PIL import Image

from sitebuild.orchestrator.config import BuildConfig
from sitebuild.orchestrator.core import BuildContext


MAIN_SCSS = """\
@import 'variables';
@import 'layout';

/* page-level rules */
body {
  color: $text;
  font-family: $font;
}
"""

VARIABLES_SCSS = """\
// partial with variables
$text: #333333;
$font: Helvetica, sans-serif;
"""

LAYOUT_SCSS = """\
/*! layout partial, banner comment */
.wrap {
  display: flex;
  .inner {
    margin: 0 auto;
  }
}
"""

APP_JS = """\
const greet = (name) => `hello ${name}`;
console.log(greet("site"));
"""

UTIL_JS = """\
let double = x => x * 2;
console.log(double(21));
"""

INDEX_HTML = """\
<!doctype html>
<html>
<head>
  <link rel="stylesheet" href="css/style.css">
  <link rel="stylesheet" href="vendor/other.css">
</head>
<body>
  <img src="assets/img/logo.png">
  <script src="js/main.js"></script>
</body>
</html>
"""

ABOUT_HTML = """\
<html><head><link rel="stylesheet" href="/css/style.css"></head><body>about</body></html>
"""


def png_bytes(size=(64, 64), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG", compress_level=0)
    return buf.getvalue()


def write(path: Path, content) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


def free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def fetch(url: str, timeout: float = 5.0):
    """GET ``url``, retrying until the server accepts connections."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            with urllib.request.urlopen(url, timeout=2) as resp:
                return resp.status, resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            return e.code, ""
        except (urllib.error.URLError, ConnectionError):
            if time.monotonic() > deadline:
                raise
            time.sleep(0.05)


@pytest.fixture
def site(tmp_path):
    """A small source tree laid out like the default path registry."""
    root = tmp_path / "site"
    write(root / "src/sass/main.scss", MAIN_SCSS)
    write(root / "src/sass/_variables.scss", VARIABLES_SCSS)
    write(root / "src/sass/_layout.scss", LAYOUT_SCSS)
    write(root / "src/scripts/app.js", APP_JS)
    write(root / "src/scripts/util.js", UTIL_JS)
    write(root / "src/index.html", INDEX_HTML)
    write(root / "src/about/index.html", ABOUT_HTML)
    write(root / "src/fonts/body.woff2", b"wOF2 fake font")
    write(root / "src/assets/img/logo.png", png_bytes())
    write(root / "src/assets/icon.svg", '<svg xmlns="http://www.w3.org/2000/svg"/>')
    write(root / "src/assets/notes.txt", "not an image")
    return root


@pytest.fixture
def config(site):
    return BuildConfig(root=site)


@pytest.fixture
def ctx(config):
    return BuildContext(config=config)


class RecordingReloader:
    """Stand-in for LiveReload that remembers what was pushed."""

    def __init__(self):
        self.events = []

    def reload(self):
        self.events.append(("reload", None))
        return 1

    def inject_css(self, name):
        self.events.append(("css", name))
        return 1


@pytest.fixture
def reloader():
    return RecordingReloader()
