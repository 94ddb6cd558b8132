"""Root conftest.py: ensure src/web2os is importable without pip install."""

import sys
from pathlib import Path

# Insert src/ directory at the front of sys.path so that
# `import web2os` resolves to src/web2os/ (the real package).
_src_dir = str(Path(__file__).resolve().parent / "src")
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)
