from __future__ import annotations

import re

DEFAULT_SCENE_NAME = "Scene"

# class Name(Scene), class Name(ThreeDScene), class Name(mn.MovingCameraScene), ...
_SCENE_CLASS = re.compile(r"^\s*class\s+(\w+)\s*\(\s*(?:[\w.]+\.)?\w*Scene\s*[,)]", re.MULTILINE)


def detect_scene_name(source: str) -> str:
    """Return the first declared scene class, or ``DEFAULT_SCENE_NAME``."""

    match = _SCENE_CLASS.search(source or "")
    return match.group(1) if match else DEFAULT_SCENE_NAME
