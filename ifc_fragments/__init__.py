"""
ifc_fragments: consolidation of parsed building models into render-ready fragments.

The command-line pipeline is started through main.py.
"""

from ifc_fragments.logging_config import (
    setup_logging,
    log_timing,
    timed,
    LogContext,
)

__all__ = [
    "setup_logging",
    "log_timing",
    "timed",
    "LogContext",
]
