"""
Browser process helpers: binary detection, launch, process and lock inspection.

These are thin OS-level utilities used by the session locator. Nothing here kills a
process; termination is limited to processes the locator spawned itself.
"""

import logging
import os
import platform
import shutil
import socket
import subprocess
from pathlib import Path

from .. import config

logger = logging.getLogger(__name__)

LOCK_FILES = ("SingletonLock", "SingletonCookie", "SingletonSocket")
PORT_MARKER_FILE = "DevToolsActivePort"
WINDOWS_LOCK_FILE = "lockfile"

_MAC_CANDIDATES = (
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
)
_WINDOWS_CANDIDATES = (
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
)
_LINUX_NAMES = ("google-chrome", "google-chrome-stable", "chromium-browser", "chromium")


def detect_chrome() -> Path | None:
    """Locate a Chrome/Chromium binary.

    Order: ``PUBLISH_CHROME_BIN``, well-known per-OS install paths, then ``PATH``.
    """
    if config.CHROME_BIN:
        path = Path(config.CHROME_BIN).expanduser()
        if path.exists():
            return path
        logger.warning(f"[Chrome] PUBLISH_CHROME_BIN does not exist: {path}")

    system = platform.system()
    candidates: list[str] = []
    if system == "Darwin":
        candidates.extend(_MAC_CANDIDATES)
    elif system == "Windows":
        candidates.extend(_WINDOWS_CANDIDATES)
        local = os.environ.get("LOCALAPPDATA")
        if local:
            candidates.append(str(Path(local) / "Google" / "Chrome" / "Application" / "chrome.exe"))

    for candidate in candidates:
        if Path(candidate).exists():
            return Path(candidate)

    for name in _LINUX_NAMES:
        found = shutil.which(name)
        if found:
            return Path(found)
    return None


def build_launch_args(
    chrome_bin: Path, profile_dir: Path, port: int, url: str, headless: bool = False
) -> list[str]:
    args = [
        str(chrome_bin),
        f"--user-data-dir={profile_dir}",
        f"--remote-debugging-port={port}",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-default-apps",
        "--window-size=1280,800",
    ]
    if headless:
        args.append("--headless=new")
    args.append(url)
    return args


def launch_chrome(
    chrome_bin: Path, profile_dir: Path, port: int, url: str, headless: bool = False
) -> subprocess.Popen:
    """Spawn an isolated browser bound to ``profile_dir`` and ``port``."""
    profile_dir.mkdir(parents=True, exist_ok=True)
    args = build_launch_args(chrome_bin, profile_dir, port, url, headless)
    logger.info(f"[Chrome] Launching on port {port} profile={profile_dir.name}")
    return subprocess.Popen(
        args,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def pid_is_running(pid: int | None) -> bool:
    """Check if a process with given PID is running."""
    if pid is None:
        return False
    try:
        pid = int(pid)
    except (ValueError, TypeError):
        return False
    if pid <= 0:
        return False

    try:
        # Zombies count as dead; their lock is stale.
        stat_path = Path("/proc") / str(pid) / "stat"
        if stat_path.exists():
            try:
                state = stat_path.read_text(encoding="utf-8", errors="ignore").split()[2]
                if state == "Z":
                    return False
            except Exception:
                pass
        os.kill(pid, 0)
        return True
    except PermissionError:
        # Alive but owned by another user.
        return True
    except Exception:
        return False


def find_pids_by_patterns(patterns: list[str]) -> dict[int, str]:
    """Map of PID -> command line for processes whose cmdline contains any pattern."""
    found: dict[int, str] = {}
    proc_root = Path("/proc")
    if not proc_root.exists():
        return found

    for entry in proc_root.iterdir():
        if not entry.name.isdigit():
            continue
        try:
            cmdline = (entry / "cmdline").read_bytes().decode("utf-8", "ignore").replace("\0", " ")
        except Exception:
            continue
        if any(pattern in cmdline for pattern in patterns):
            found[int(entry.name)] = cmdline
    return found


def parse_debug_port(cmdline: str) -> int | None:
    for part in cmdline.split():
        if part.startswith("--remote-debugging-port="):
            value = part.split("=", 1)[1]
            if value.isdigit() and int(value) > 0:
                return int(value)
    return None


def find_debug_ports_for_profile(profile_dir: Path) -> list[int]:
    """Debugging ports of running browsers launched with ``--user-data-dir=<profile_dir>``."""
    ports: list[int] = []
    flag = f"--user-data-dir={profile_dir}"
    for pid, cmdline in sorted(find_pids_by_patterns([flag]).items()):
        # douyin-1 must not match douyin-10
        if f"{flag} " not in f"{cmdline} ":
            continue
        port = parse_debug_port(cmdline)
        if port and port not in ports:
            logger.debug(f"[Chrome] PID {pid} uses debugging port {port}")
            ports.append(port)
    return ports


def read_devtools_active_port(profile_dir: Path) -> int | None:
    """Port from the ``DevToolsActivePort`` marker (first line)."""
    marker = profile_dir / PORT_MARKER_FILE
    try:
        first = marker.read_text(encoding="utf-8", errors="ignore").splitlines()[0].strip()
    except (OSError, IndexError):
        return None
    return int(first) if first.isdigit() and int(first) > 0 else None


def read_singleton_lock_pid(profile_dir: Path) -> int | None:
    """PID owning the profile lock, if any.

    On Linux/macOS ``SingletonLock`` is a symlink to ``<hostname>-<pid>``; some
    builds write it as a regular file with the same content.
    """
    lock = profile_dir / "SingletonLock"
    try:
        target = os.readlink(lock)
    except OSError:
        try:
            target = lock.read_text(encoding="utf-8", errors="ignore").strip()
        except OSError:
            return None
    tail = target.rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else None


def lockfile_in_use(profile_dir: Path) -> bool:
    """Whether the Windows ``lockfile`` marker is held by a running browser.

    Windows Chrome keeps ``lockfile`` open with an exclusive share mode for as long as
    the profile is in use, so an existing marker that cannot be opened means busy. On
    other platforms the marker is absent or freely openable.
    """
    lock = profile_dir / WINDOWS_LOCK_FILE
    if not lock.exists():
        return False
    try:
        with lock.open("a"):
            return False
    except OSError:
        return True


def clear_singleton_artifacts(profile_dir: Path) -> list[str]:
    """Remove stale lock artifacts; returns the names removed."""
    removed = []
    for name in LOCK_FILES:
        path = profile_dir / name
        if path.is_symlink() or path.exists():
            try:
                path.unlink()
                removed.append(name)
            except OSError as e:
                logger.warning(f"[Chrome] Could not remove {path}: {e}")
    return removed


def port_is_free(port: int, host: str = "127.0.0.1") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_free_port(start: int | None = None, end: int | None = None, host: str | None = None) -> int | None:
    """First bindable port in ``[start, end)``."""
    start = config.PORT_RANGE_START if start is None else start
    end = config.PORT_RANGE_END if end is None else end
    host = host or config.DEBUG_HOST
    for port in range(start, end):
        if port_is_free(port, host):
            return port
    return None


def terminate_proc(proc: subprocess.Popen) -> None:
    """Terminate a spawned subprocess."""
    try:
        proc.terminate()
        proc.wait(timeout=5)
    except Exception as e:
        logger.debug(f"[Chrome] terminate failed: {e}")
