"""
Remote session locator.

Finds (or proves the absence of) a debuggable browser for a profile and, when none
exists, launches one on a free local port. A live profile lock held by another
process is terminal: the caller has to close that window.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .. import config
from ..config import Timeouts
from ..errors import CdpNoPageError, ChromeNotReadyError, ProfileBusyError, PublishError
from ..models import AcquisitionMode, Session
from ..utils.path_security import next_profile_index, profile_dir_name, resolve_profile_dir
from ..utils.timing import Clock, SystemClock, poll_until
from . import chrome
from .devtools import DevToolsEndpoint

logger = logging.getLogger(__name__)


class RemoteSessionLocator:
    """Acquires a ``Session`` for one profile per publish attempt."""

    def __init__(
        self,
        profiles_root: Path | None = None,
        timeouts: Timeouts | None = None,
        clock: Clock | None = None,
        endpoint_factory: Callable[[int], DevToolsEndpoint] | None = None,
        chrome_bin: Path | None = None,
        headless: bool | None = None,
    ):
        self.profiles_root = Path(profiles_root or config.PROFILES_DIR)
        self.timeouts = timeouts or Timeouts()
        self.clock = clock or SystemClock()
        self.endpoint_factory = endpoint_factory or DevToolsEndpoint
        self.chrome_bin = chrome_bin
        self.headless = config.LAUNCH_HEADLESS if headless is None else headless
        self._spawned: dict[int, subprocess.Popen] = {}

    def profile_dir_for(self, profile: str | Path) -> Path:
        return resolve_profile_dir(self.profiles_root, str(profile))

    def new_profile(self, platform: str) -> str:
        """Name of the next unused ``<platform>-<n>`` profile under the profiles root."""
        return profile_dir_name(platform, next_profile_index(self.profiles_root, platform))

    def candidate_ports(self, profile_dir: Path) -> list[int]:
        """Ports that may belong to this profile: the port marker first, then live processes."""
        ports: list[int] = []
        marker_port = chrome.read_devtools_active_port(profile_dir)
        if marker_port:
            ports.append(marker_port)
        for port in chrome.find_debug_ports_for_profile(profile_dir):
            if port not in ports:
                ports.append(port)
        return ports

    def find_active_endpoint(self, profile_dir: Path) -> DevToolsEndpoint | None:
        for port in self.candidate_ports(profile_dir):
            endpoint = self.endpoint_factory(port)
            version = endpoint.version()
            if version is not None:
                logger.info(
                    f"[Locator] Found live endpoint on port {port} ({version.get('Browser', '?')})"
                )
                return endpoint
            logger.debug(f"[Locator] Port {port} did not validate")
        return None

    def acquire(self, profile: str | Path, target_url: str) -> Session:
        """Return a usable session for ``profile``.

        Raises:
            ProfileBusyError: Another live process holds the profile lock
            ChromeNotReadyError: No endpoint ever answered
            CdpNoPageError: The endpoint answered but never listed a page
        """
        profile_dir = self.profile_dir_for(profile)
        endpoint = self.find_active_endpoint(profile_dir)
        if endpoint is not None:
            if not endpoint.page_targets():
                logger.info(f"[Locator] Port {endpoint.port} has no page target; opening one")
                endpoint.new_target(target_url)
                self.wait_until_ready(endpoint)
            return Session(
                endpoint_port=endpoint.port,
                acquisition_mode=AcquisitionMode.REUSED,
                profile_dir=profile_dir,
                host=endpoint.host,
            )

        if chrome.lockfile_in_use(profile_dir):
            raise ProfileBusyError(
                f"Profile {profile_dir.name} is locked by a running browser ({chrome.WINDOWS_LOCK_FILE})",
                {"profile_dir": str(profile_dir), "lock": chrome.WINDOWS_LOCK_FILE},
            )

        lock_pid = chrome.read_singleton_lock_pid(profile_dir)
        if lock_pid is not None:
            if chrome.pid_is_running(lock_pid):
                raise ProfileBusyError(
                    f"Profile {profile_dir.name} is locked by running process {lock_pid}",
                    {"profile_dir": str(profile_dir), "pid": lock_pid},
                )
            removed = chrome.clear_singleton_artifacts(profile_dir)
            logger.warning(
                f"[Locator] Stale profile lock (pid {lock_pid} dead); removed {', '.join(removed) or 'nothing'}"
            )

        return self._launch(profile_dir, target_url)

    def _launch(self, profile_dir: Path, target_url: str) -> Session:
        chrome_bin = self.chrome_bin or chrome.detect_chrome()
        if chrome_bin is None:
            raise ChromeNotReadyError(
                "No Chrome/Chromium binary found", {"profile_dir": str(profile_dir)}
            )
        port = chrome.find_free_port()
        if port is None:
            raise ChromeNotReadyError(
                f"No free debugging port in [{config.PORT_RANGE_START}, {config.PORT_RANGE_END})",
                {"profile_dir": str(profile_dir)},
            )

        proc = chrome.launch_chrome(chrome_bin, profile_dir, port, target_url, self.headless)
        self._spawned[port] = proc
        endpoint = self.endpoint_factory(port)
        try:
            self.wait_until_ready(endpoint)
        except PublishError:
            self._terminate(port)
            raise

        logger.info(f"[Locator] Launched browser pid={proc.pid} on port {port}")
        return Session(
            endpoint_port=port,
            acquisition_mode=AcquisitionMode.LAUNCHED_NEW,
            profile_dir=profile_dir,
            host=endpoint.host,
            pid=proc.pid,
        )

    def wait_until_ready(self, endpoint: DevToolsEndpoint, timeout_s: float | None = None) -> list[dict[str, Any]]:
        """Poll until ``endpoint`` lists at least one page target."""
        timeout_s = self.timeouts.chrome_ready_s if timeout_s is None else timeout_s
        reachable = False

        def probe() -> list[dict[str, Any]] | None:
            nonlocal reachable
            if not endpoint.is_reachable():
                return None
            reachable = True
            return endpoint.page_targets() or None

        targets = poll_until(probe, timeout_s, self.timeouts.poll_interval_s, self.clock)
        if targets:
            return targets

        details = {"port": endpoint.port, "timeout_s": timeout_s}
        if reachable:
            raise CdpNoPageError(f"Endpoint {endpoint.base_url} exposes no page target", details)
        raise ChromeNotReadyError(f"Endpoint {endpoint.base_url} never became reachable", details)

    def _terminate(self, port: int) -> None:
        proc = self._spawned.pop(port, None)
        if proc is not None:
            chrome.terminate_proc(proc)

    def release(self, session: Session, terminate: bool = False) -> None:
        """Forget a session. Only a browser this locator launched can be terminated."""
        if terminate and session.acquisition_mode == AcquisitionMode.LAUNCHED_NEW:
            self._terminate(session.endpoint_port)
        else:
            self._spawned.pop(session.endpoint_port, None)
