"""Display surface seam: where finished rasters are handed off."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .raster import RasterBuffer

_LOGGER = logging.getLogger("choroglobe.surfaces")


class DisplaySurface(Protocol):
    def present(self, raster: RasterBuffer) -> None: ...


class ViewportSurface(DisplaySurface, Protocol):
    """Surface whose raster size follows its host container."""

    def viewport_size(self) -> tuple[int, int]: ...


class PngFileSurface:
    """Write every presented frame to one PNG path."""

    def __init__(self, path: Path, *, viewport: tuple[int, int] | None = None) -> None:
        self.path = path
        self.viewport = viewport
        self.frames_presented = 0
        self.last_raster: RasterBuffer | None = None

    def present(self, raster: RasterBuffer) -> None:
        raster.save(self.path)
        self.frames_presented += 1
        self.last_raster = raster
        _LOGGER.debug("Presented %s frame %d to %s", raster.view, self.frames_presented, self.path)

    def viewport_size(self) -> tuple[int, int]:
        if self.viewport is None:
            raise RuntimeError(f"Surface {self.path} has no viewport size configured")
        return self.viewport
