"""Isolated Chrome instance used as the rendering surface."""

import asyncio
import atexit
import logging
import os
import shutil
import socket
import subprocess
import sys
import tempfile
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)


class ChromeInstanceError(Exception):
    """Chrome instance management related errors."""
    pass


class ChromeStartupError(ChromeInstanceError):
    """Chrome did not come up in time or could not be spawned."""
    pass


LINUX_CANDIDATES = ["google-chrome", "google-chrome-stable", "chromium", "chromium-browser"]


class ChromeInstanceManager:
    """Launch a throwaway Chrome profile with a local debugging port."""

    def __init__(self, chrome_path: Optional[str] = None, max_port_attempts: int = 5,
                 headless: bool = False):
        self.chrome_process: Optional[subprocess.Popen] = None
        self.temp_user_data_dir: Optional[str] = None
        self.debug_port: Optional[int] = None
        self.chrome_path = chrome_path
        self.max_port_attempts = max_port_attempts
        self.headless = headless
        self._cleanup_registered = False

    async def launch_isolated_chrome(self) -> str:
        """Start Chrome and return "host:port" of its debugging endpoint."""
        last_error: Optional[Exception] = None
        for attempt in range(self.max_port_attempts):
            try:
                self._prepare_launch_environment(attempt)
                self._launch_chrome_process()
                await self._wait_for_chrome_ready(timeout=15)
                self._register_cleanup()
                return f"127.0.0.1:{self.debug_port}"
            except (ChromeStartupError, OSError) as e:
                last_error = e
                logger.debug(f"Chrome launch failed (attempt {attempt + 1}/{self.max_port_attempts}): {e}")
                await self._terminate()

        raise ChromeInstanceError(f"All {self.max_port_attempts} attempts failed. Last error: {last_error}")

    def _prepare_launch_environment(self, attempt: int) -> None:
        if not self.chrome_path:
            self.chrome_path = self._detect_chrome_path()
            if not self.chrome_path:
                raise ChromeInstanceError(
                    "Chrome executable not found. Set TAPSPECT_CHROME_PATH."
                )

        self.temp_user_data_dir = tempfile.mkdtemp(prefix=f"tapspect_chrome_{attempt}_")
        self.debug_port = self._select_port(9222 + attempt * 10)

    def _detect_chrome_path(self) -> Optional[str]:
        """Find a Chrome binary; TAPSPECT_CHROME_PATH wins over platform defaults."""
        env_path = os.environ.get("TAPSPECT_CHROME_PATH")
        if env_path and os.path.exists(env_path) and os.access(env_path, os.X_OK):
            logger.info(f"Using Chrome path from environment: {env_path}")
            return env_path

        if sys.platform == "darwin":
            candidates = [
                "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
                "/Applications/Chromium.app/Contents/MacOS/Chromium",
                os.path.expanduser("~/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
            ]
        elif sys.platform == "win32":
            candidates = [
                os.path.expandvars(r"%ProgramFiles%\Google\Chrome\Application\chrome.exe"),
                os.path.expandvars(r"%ProgramFiles(x86)%\Google\Chrome\Application\chrome.exe"),
                os.path.expandvars(r"%LocalAppData%\Google\Chrome\Application\chrome.exe"),
            ]
        else:
            candidates = [path for path in (shutil.which(name) for name in LINUX_CANDIDATES) if path]

        for path in candidates:
            if os.path.exists(path) and os.access(path, os.X_OK):
                logger.debug(f"Found Chrome at: {path}")
                return path
        return None

    def _select_port(self, base_port: int, max_attempts: int = 10) -> int:
        for port in range(base_port, base_port + max_attempts):
            try:
                with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                    s.bind(("127.0.0.1", port))
                    return port
            except OSError:
                continue
        raise ChromeStartupError(f"Ports {base_port}-{base_port + max_attempts - 1} are all busy")

    def _build_chrome_command(self) -> List[str]:
        args = [
            self.chrome_path,
            f"--remote-debugging-port={self.debug_port}",
            "--remote-debugging-address=127.0.0.1",
            f"--user-data-dir={self.temp_user_data_dir}",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-default-apps",
            "--disable-extensions",
            "--disable-background-networking",
            "--disable-sync",
        ]
        if self.headless:
            args.append("--headless=new")
        # Chrome refuses to start its sandbox as root (containers, CI)
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            args.append("--no-sandbox")
        args.append("about:blank")
        return args

    def _launch_chrome_process(self) -> None:
        try:
            self.chrome_process = subprocess.Popen(
                self._build_chrome_command(),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=(os.name == "posix")
            )
        except Exception as e:
            raise ChromeStartupError(f"Failed to start Chrome process: {e}")
        logger.info(f"Chrome process started with PID: {self.chrome_process.pid}")

    async def _wait_for_chrome_ready(self, timeout: int = 15) -> None:
        """Poll /json/version every 0.5s until Chrome answers with JSON."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            try:
                async with httpx.AsyncClient(timeout=1.0) as client:
                    response = await client.get(f"http://127.0.0.1:{self.debug_port}/json/version")
                    if response.status_code == 200:
                        response.json()
                        logger.info(f"Chrome is ready on port {self.debug_port}")
                        return
            except Exception as e:
                logger.debug(f"Chrome not ready yet: {e}")
            await asyncio.sleep(0.5)

        raise ChromeStartupError(f"Chrome startup timeout after {timeout}s")

    def _register_cleanup(self) -> None:
        if not self._cleanup_registered:
            atexit.register(self._emergency_cleanup)
            self._cleanup_registered = True

    def _emergency_cleanup(self) -> None:
        """Synchronous fallback run at interpreter exit."""
        if self.chrome_process and self.chrome_process.poll() is None:
            logger.warning("Emergency cleanup: terminating Chrome process")
            self.chrome_process.terminate()
            try:
                self.chrome_process.wait(timeout=3)
            except subprocess.TimeoutExpired:
                self.chrome_process.kill()
        if self.temp_user_data_dir and os.path.exists(self.temp_user_data_dir):
            shutil.rmtree(self.temp_user_data_dir, ignore_errors=True)

    async def _terminate(self) -> None:
        if self.chrome_process and self.chrome_process.poll() is None:
            self.chrome_process.terminate()
            try:
                await asyncio.wait_for(asyncio.to_thread(self.chrome_process.wait), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Chrome process didn't terminate gracefully, force killing...")
                self.chrome_process.kill()
                await asyncio.to_thread(self.chrome_process.wait)
        self.chrome_process = None

        if self.temp_user_data_dir and os.path.exists(self.temp_user_data_dir):
            await asyncio.to_thread(shutil.rmtree, self.temp_user_data_dir, ignore_errors=True)
        self.temp_user_data_dir = None

    def is_chrome_running(self) -> bool:
        return self.chrome_process is not None and self.chrome_process.poll() is None

    async def cleanup(self) -> None:
        """Terminate Chrome and remove the temporary profile."""
        try:
            await self._terminate()
            self.debug_port = None
            logger.info("Chrome instance cleanup completed")
        except Exception as e:
            logger.error(f"Cleanup error (non-fatal): {e}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()
