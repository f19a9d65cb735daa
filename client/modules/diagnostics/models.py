"""Diagnostics data models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class NetworkProbe(BaseModel):
    """Result of the backend reachability probe."""

    url: str = Field(default="", description="URL that was probed")
    reachable: bool = Field(default=False)
    status_code: Optional[int] = Field(None, description="HTTP status if any response arrived")
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class DiagnosticsReport(BaseModel):
    """Snapshot of the environment at the time of a failure."""

    created_at: datetime
    backend_kind: str
    platform: str = ""
    python_version: str = ""
    storage_writable: Optional[bool] = None
    proxy_configured: bool = False
    network: NetworkProbe = Field(default_factory=NetworkProbe)
    probe_errors: list[str] = Field(default_factory=list)
    hint: str = ""

    def summary(self) -> str:
        """Multi-line human-readable rendering for logs."""
        lines = [
            f"backend: {self.backend_kind}",
            f"platform: {self.platform} (python {self.python_version})",
            f"storage writable: {self.storage_writable}",
            f"proxy configured: {self.proxy_configured}",
            f"backend reachable: {self.network.reachable} ({self.network.url or 'no url'})",
        ]
        if self.network.error:
            lines.append(f"network error: {self.network.error}")
        for error in self.probe_errors:
            lines.append(f"probe error: {error}")
        lines.append(f"hint: {self.hint}")
        return "\n".join(lines)
