# promptcomposer/__init__.py
import os
from loguru import logger

__version__ = "0.3.0"

# PROMPTCOMPOSER_QUIET=1 silences library logging; setup_logging() turns it back on.
if os.environ.get("PROMPTCOMPOSER_QUIET", "0") == "1":
    logger.disable("promptcomposer")
