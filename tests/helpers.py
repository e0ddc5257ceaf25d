"""Command helpers shared by tests.

Build and install commands are small Python scripts run with the current
interpreter, so the pipeline can be exercised without a JavaScript toolchain.
"""

import shlex
import sys
from pathlib import Path

# Copies index.html into dist/ and emits one asset.
BUILD_SCRIPT = (
    "import pathlib, shutil\n"
    "out = pathlib.Path('dist')\n"
    "(out / 'assets').mkdir(parents=True, exist_ok=True)\n"
    "shutil.copy('index.html', out / 'index.html')\n"
    "(out / 'assets' / 'app.js').write_text('console.log(1)')\n"
    "print('built ok')\n"
)

FAILING_SCRIPT = "import sys\nprint('compile error: boom')\nsys.exit(3)\n"


def python_command(script: str) -> str:
    """Return a shell-style command that runs a Python snippet."""
    return shlex.join([sys.executable, "-c", script])


def install_script(counter: Path) -> str:
    """Install script that records how often it ran."""
    return (
        "import pathlib\n"
        f"counter = pathlib.Path({str(counter)!r})\n"
        "count = int(counter.read_text()) if counter.exists() else 0\n"
        "counter.write_text(str(count + 1))\n"
        "pathlib.Path('node_modules/dep').mkdir(parents=True)\n"
        "pathlib.Path('node_modules/dep/index.js').write_text('module.exports = 1')\n"
    )
