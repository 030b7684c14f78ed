"""
Background service management (gns3server for the live-run experiment).

The service is started as a child process in its own session and is
considered ready once an HTTP probe answers with a 2xx status. When no probe
URL is configured the harness falls back to a fixed delay and says so in the
log; that mode cannot detect a service that never came up.

The service is always stopped when the dependent experiment ends, including
on failure and cancellation:

    with BackgroundService(GNS3_SERVICE, ready_url=config.service_url) as svc:
        ...  # run invocations
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

from .errors import ServiceStartupError
from .utils import GNS3_COMMAND, SERVICE_FALLBACK_DELAY, TIMEOUT_SERVICE

log = logging.getLogger("snowcap_eval.service")


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    command: Tuple[str, ...]


GNS3_SERVICE = ServiceSpec(name="gns3server", command=GNS3_COMMAND)


class BackgroundService:
    """A long-running helper process with an explicit readiness check."""

    def __init__(
        self,
        spec: ServiceSpec,
        ready_url: Optional[str] = None,
        timeout: float = TIMEOUT_SERVICE,
        poll_interval: float = 0.5,
        fallback_delay: float = SERVICE_FALLBACK_DELAY,
        stop_grace: float = 5.0,
    ):
        self.spec = spec
        self.ready_url = ready_url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.fallback_delay = fallback_delay
        self.stop_grace = stop_grace
        self.process: Optional[subprocess.Popen] = None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def start(self) -> None:
        """
        Launch the service and block until it is ready.

        Raises:
            ServiceStartupError: If the process cannot be spawned, exits
                early, or the probe does not succeed within ``timeout``.
        """
        log.info(f"Starting {self.spec.name}: {' '.join(self.spec.command)}")
        try:
            self.process = subprocess.Popen(
                list(self.spec.command),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise ServiceStartupError(f"Could not start {self.spec.name}: {e}") from None

        try:
            if self.ready_url:
                self._wait_ready()
            else:
                log.warning(
                    f"No readiness probe for {self.spec.name}; "
                    f"degraded mode: sleeping {self.fallback_delay}s"
                )
                time.sleep(self.fallback_delay)
                if not self.running:
                    raise ServiceStartupError(
                        f"{self.spec.name} exited with code {self.process.returncode} during startup"
                    )
        except BaseException:
            self.stop()
            raise

    def _wait_ready(self) -> None:
        log.info(f"Waiting for {self.spec.name} at {self.ready_url} (timeout {self.timeout}s)...")
        deadline = time.monotonic() + self.timeout
        last_error = "no response"
        while time.monotonic() < deadline:
            if not self.running:
                raise ServiceStartupError(
                    f"{self.spec.name} exited with code {self.process.returncode} during startup"
                )
            try:
                response = requests.get(self.ready_url, timeout=min(2.0, self.timeout))
                if response.ok:
                    log.info(f"{self.spec.name} is ready")
                    return
                last_error = f"HTTP {response.status_code}"
            except requests.RequestException as e:
                last_error = str(e)
            time.sleep(self.poll_interval)
        raise ServiceStartupError(
            f"{self.spec.name} not ready after {self.timeout}s ({last_error})"
        )

    def stop(self) -> Optional[int]:
        """Terminate the service (kill after ``stop_grace``). Safe to call twice."""
        if self.process is None:
            return None
        if self.process.poll() is None:
            log.info(f"Stopping {self.spec.name} (pid {self.process.pid})")
            self.process.terminate()
            try:
                self.process.wait(timeout=self.stop_grace)
            except subprocess.TimeoutExpired:
                log.warning(f"{self.spec.name} ignored SIGTERM; killing")
                self.process.kill()
                self.process.wait()
        return self.process.returncode

    def __enter__(self) -> "BackgroundService":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
