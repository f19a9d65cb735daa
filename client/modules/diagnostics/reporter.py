"""
Diagnostics reporter.

Advisory only: when authentication fails terminally, probe the environment
and turn what we find into a short hint for logs and the UI. ``run`` never
raises; every probe failure is recorded on the report instead.
"""

import logging
import os
import platform
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from shared.storage import ClientStorage

from .models import DiagnosticsReport, NetworkProbe

logger = logging.getLogger(__name__)


PROXY_ENV_VARS = ("HTTPS_PROXY", "HTTP_PROXY", "ALL_PROXY", "https_proxy", "http_proxy", "all_proxy")

HINT_STORAGE_BLOCKED = (
    "Local storage is not writable, so sessions cannot be saved. "
    "Check permissions on the app data folder or leave private/sandboxed mode."
)
HINT_UNREACHABLE = "Cannot connect to the authentication service. Check your connection."
HINT_NOT_CONFIGURED = "The authentication service URL is not configured."
HINT_PROXY = "A network proxy is configured and may be blocking the authentication service."
HINT_GENERIC = "Authentication did not complete. Please try again."
HINT_GUEST = "You can continue in guest mode."


class DiagnosticsReporter:
    """
    Runs environment probes and produces a ``DiagnosticsReport``.

    Args:
        backend_kind: Name of the active backend (for the report)
        service_url: Base URL of the identity service to probe
        storage: Durable client storage to check for writability
        guest_mode_enabled: Whether to suggest guest mode in the hint
        probe_timeout: Seconds allowed for the reachability probe
        client_factory: Builds the httpx client (tests inject a mock transport)
    """

    def __init__(
        self,
        backend_kind: str,
        service_url: str,
        storage: Optional[ClientStorage] = None,
        guest_mode_enabled: bool = False,
        probe_timeout: float = 3.0,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ):
        self._backend_kind = backend_kind
        self._service_url = service_url
        self._storage = storage
        self._guest_mode_enabled = guest_mode_enabled
        self._probe_timeout = probe_timeout
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=self._probe_timeout)
        )

    async def run(self) -> DiagnosticsReport:
        report = DiagnosticsReport(
            created_at=datetime.now(timezone.utc),
            backend_kind=self._backend_kind,
        )
        try:
            self._probe_runtime(report)
            self._probe_storage(report)
            self._probe_proxy(report)
            report.network = await self._probe_network()
        except Exception as e:
            logger.debug("Diagnostics probe crashed", exc_info=True)
            report.probe_errors.append(str(e))
        report.hint = self.build_hint(report)
        logger.info(f"Auth diagnostics:\n{report.summary()}")
        return report

    def _probe_runtime(self, report: DiagnosticsReport) -> None:
        report.platform = platform.platform()
        report.python_version = platform.python_version()

    def _probe_storage(self, report: DiagnosticsReport) -> None:
        if self._storage is None:
            return
        try:
            report.storage_writable = self._storage.is_writable()
        except Exception as e:
            report.storage_writable = False
            report.probe_errors.append(f"storage: {e}")

    def _probe_proxy(self, report: DiagnosticsReport) -> None:
        report.proxy_configured = any(os.environ.get(name) for name in PROXY_ENV_VARS)

    async def _probe_network(self) -> NetworkProbe:
        if not self._service_url:
            return NetworkProbe(error="service URL not configured")

        probe = NetworkProbe(url=self._service_url)
        started = time.perf_counter()
        try:
            async with self._client_factory() as client:
                response = await client.get(self._service_url, timeout=self._probe_timeout)
            # Any HTTP answer, even an error status, proves the host is reachable
            probe.reachable = True
            probe.status_code = response.status_code
        except httpx.HTTPError as e:
            probe.error = str(e) or e.__class__.__name__
        probe.latency_ms = round((time.perf_counter() - started) * 1000, 1)
        return probe

    def build_hint(self, report: DiagnosticsReport) -> str:
        """Pick the most specific finding and phrase it for a user."""
        if report.storage_writable is False:
            hint = HINT_STORAGE_BLOCKED
        elif not report.network.url:
            hint = HINT_NOT_CONFIGURED
        elif not report.network.reachable and report.proxy_configured:
            hint = f"{HINT_UNREACHABLE} {HINT_PROXY}"
        elif not report.network.reachable:
            hint = HINT_UNREACHABLE
        else:
            hint = HINT_GENERIC

        if self._guest_mode_enabled:
            hint = f"{hint} {HINT_GUEST}"
        return hint
