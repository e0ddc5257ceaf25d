"""Default scaffolding for generated source trees.

Generated trees often omit boilerplate. Before compiling, every file in
``SCAFFOLD_FILES`` that the tree does not already contain is synthesized
from a default. Producer-supplied files are never overwritten.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

from sitedeploy.errors import BuildError

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE_JSON: dict[str, object] = {
    "name": "sitedeploy-app",
    "version": "0.0.0",
    "private": True,
    "type": "module",
    "scripts": {"build": "vite build"},
    "dependencies": {"react": "^19.2.3", "react-dom": "^19.2.3"},
    "devDependencies": {
        "@types/react": "^19.0.0",
        "@types/react-dom": "^19.0.0",
        "@vitejs/plugin-react": "^4.2.1",
        "typescript": "^5.2.2",
        "vite": "^5.0.0",
    },
}

# base "./" keeps asset references relative so the build works under
# /deployments/<id>/.
DEFAULT_VITE_CONFIG = """\
import { defineConfig } from 'vite';
import react from '@vitejs/plugin-react';
import path from 'path';

export default defineConfig({
  plugins: [react()],
  base: './',
  resolve: { alias: { '@': path.resolve(__dirname, './src') } },
  build: { outDir: 'dist', emptyOutDir: true },
});
"""

DEFAULT_TSCONFIG: dict[str, object] = {
    "compilerOptions": {
        "target": "ES2020",
        "useDefineForClassFields": True,
        "lib": ["ES2020", "DOM", "DOM.Iterable"],
        "module": "ESNext",
        "skipLibCheck": True,
        "moduleResolution": "bundler",
        "allowImportingTsExtensions": True,
        "resolveJsonModule": True,
        "isolatedModules": True,
        "noEmit": True,
        "jsx": "react-jsx",
        "strict": True,
        "paths": {"@/*": ["./src/*"]},
    },
    "include": ["src"],
}

DEFAULT_INDEX_HTML = """\
<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>App</title>
    <script src="https://cdn.tailwindcss.com"></script>
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="/src/index.tsx"></script>
  </body>
</html>
"""

DEFAULT_ENTRY = """\
import React from 'react';
import { createRoot } from 'react-dom/client';
import App from './App';

createRoot(document.getElementById('root')!).render(
  <React.StrictMode>
    <App />
  </React.StrictMode>
);
"""


def _json(data: dict[str, object]) -> Callable[[], str]:
    return lambda: json.dumps(data, indent=2) + "\n"


def _text(content: str) -> Callable[[], str]:
    return lambda: content


# Relative path -> default content factory, in write order.
SCAFFOLD_FILES: dict[str, Callable[[], str]] = {
    "package.json": _json(DEFAULT_PACKAGE_JSON),
    "vite.config.ts": _text(DEFAULT_VITE_CONFIG),
    "tsconfig.json": _json(DEFAULT_TSCONFIG),
    "index.html": _text(DEFAULT_INDEX_HTML),
    "src/index.tsx": _text(DEFAULT_ENTRY),
}


def backfill_scaffolding(source_dir: Path) -> list[str]:
    """Write default scaffolding files that the tree lacks.

    Args:
        source_dir: Materialized source tree.

    Returns:
        Relative paths of the files that were synthesized.

    Raises:
        BuildError: If a default cannot be written.
    """
    written: list[str] = []
    for relative, factory in SCAFFOLD_FILES.items():
        target = source_dir / relative
        if target.exists():
            continue
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(factory(), encoding="utf-8")
        except OSError as e:
            raise BuildError(
                f"Failed to write scaffolding {relative}: {e}", code="scaffold_error"
            ) from e
        written.append(relative)

    if written:
        logger.info("Backfilled scaffolding: %s", ", ".join(written))
    return written


__all__ = [
    "DEFAULT_INDEX_HTML",
    "DEFAULT_PACKAGE_JSON",
    "SCAFFOLD_FILES",
    "backfill_scaffolding",
]
