from __future__ import annotations

from dataclasses import dataclass

from fujiraw.utils.tables import load_table


@dataclass(frozen=True)
class CameraModel:
    name: str
    device_id: str
    version_code: str
    default_serial: str | None = None

    @property
    def serial(self) -> str:
        return self.default_serial or f"{self.device_id.replace('-', '')}0000000"


def _load_cameras() -> tuple[CameraModel, ...]:
    rows = load_table("cameras.yaml").get("cameras", ())
    return tuple(
        CameraModel(
            name=str(row["name"]),
            device_id=str(row["device_id"]),
            version_code=str(row["version_code"]),
            default_serial=row.get("default_serial"),
        )
        for row in rows
    )


SUPPORTED_CAMERAS: tuple[CameraModel, ...] = _load_cameras()
DEFAULT_CAMERA = SUPPORTED_CAMERAS[0]


def find_camera(key: str) -> CameraModel:
    """Look up an export target by device id or display name, ignoring case."""

    wanted = key.strip().lower()
    for camera in SUPPORTED_CAMERAS:
        if wanted in (camera.device_id.lower(), camera.name.lower()):
            return camera
    for camera in SUPPORTED_CAMERAS:
        # "GFX 100S" vs "GFX100S"
        if wanted.replace(" ", "") == camera.device_id.lower().replace(" ", ""):
            return camera
    known = ", ".join(c.device_id for c in SUPPORTED_CAMERAS)
    raise KeyError(f"unknown camera {key!r}; known: {known}")
