from __future__ import annotations

import os
import tempfile

# Default config/cache locations resolve under XDG dirs; keep them out of $HOME.
_SANDBOX = tempfile.mkdtemp(prefix="gofi-tests-")
os.environ.setdefault("XDG_CACHE_HOME", os.path.join(_SANDBOX, "cache"))
os.environ.setdefault("XDG_CONFIG_HOME", os.path.join(_SANDBOX, "config"))
