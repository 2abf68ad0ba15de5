"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from typing import Final

PARSE_CACHE_MAX: Final[int] = max(1, int(os.environ.get("EXPR_JAX_PARSE_CACHE_MAX", "256")))
USE_IR_CACHE: Final[bool] = os.environ.get("EXPR_JAX_DISABLE_IR_CACHE", "0") != "1"
