"""
Diagnostics module.

Advisory environment and network probes run after an authentication
failure.

Public API:
- DiagnosticsReporter: Runs the probes, never raises
- DiagnosticsReport / NetworkProbe: Probe results
"""

from .models import DiagnosticsReport, NetworkProbe
from .reporter import DiagnosticsReporter

__all__ = [
    "DiagnosticsReporter",
    "DiagnosticsReport",
    "NetworkProbe",
]
