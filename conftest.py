"""Root conftest: make the src-layout package importable without pip install."""

import sys
from pathlib import Path

# `import approval_gate` must resolve to this checkout even when an older
# build is installed.
_src = str(Path(__file__).parent / "src")
if _src not in sys.path:
    sys.path.insert(0, _src)
