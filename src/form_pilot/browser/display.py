"""Virtual display that lets an operator see and drive headed browsers over VNC."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Optional

from pyvirtualdisplay import Display

from ..config import BrowserConfig

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class VNCConnectionInfo:
    """Where an operator points a VNC viewer to solve a paused session's challenge."""

    host: str
    port: int
    display: str

    @property
    def url(self) -> str:
        return f"vnc://{self.host}:{self.port}"

    def as_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port, "display": self.display, "url": self.url}


def vnc_port_for(display_var: str) -> int:
    """Conventional RFB port for an X display such as ``:1`` or ``host:1.0``."""

    number = display_var.rsplit(":", 1)[-1].split(".")[0]
    return 5900 + int(number)


class OperatorDisplay:
    """One shared X display for every headed session, exported read-write over VNC.

    Disabled for headless browsers. When the exporter cannot run, sessions
    still pause for verification; operator notifications simply carry no
    connection details.
    """

    def __init__(self, config: BrowserConfig, *, exporter: str = "x11vnc") -> None:
        self.enabled = config.enable_vnc and not config.headless
        self._size = (config.viewport_width, config.viewport_height)
        self._host = config.vnc_host
        self._port = config.vnc_port
        self._exporter = exporter
        self._display: Optional[Display] = None
        self._process: Optional[subprocess.Popen[bytes]] = None
        self._info: Optional[VNCConnectionInfo] = None

    @property
    def connection_info(self) -> Optional[VNCConnectionInfo]:
        return self._info

    def start(self) -> Optional[VNCConnectionInfo]:
        if not self.enabled or self._info is not None:
            return self._info
        executable = shutil.which(self._exporter)
        if executable is None:
            LOGGER.warning("%s not found; paused sessions will not be reachable over VNC", self._exporter)
            self.enabled = False
            return None

        self._display = Display(visible=False, size=self._size)
        self._display.start()
        display_var = os.environ.get("DISPLAY")
        if not display_var:
            self.stop()
            raise RuntimeError("DISPLAY environment variable missing after starting virtual display")

        port = self._port or vnc_port_for(display_var)
        self._process = subprocess.Popen(
            [executable, "-display", display_var, "-rfbport", str(port), "-forever", "-shared", "-nopw", "-quiet"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        if self._process.poll() is not None:
            LOGGER.error("%s exited with code %s; continuing without VNC", self._exporter, self._process.returncode)
            self.stop()
            self.enabled = False
            return None

        self._info = VNCConnectionInfo(host=self._host, port=port, display=display_var)
        LOGGER.info("Operators can reach paused sessions at %s (display %s)", self._info.url, display_var)
        return self._info

    def stop(self) -> None:
        process, self._process = self._process, None
        if process is not None and process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:  # pragma: no cover - exporter ignoring SIGTERM
                process.kill()
        display, self._display = self._display, None
        if display is not None:
            display.stop()
        self._info = None
