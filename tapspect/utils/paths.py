"""Export directory helpers."""

import os
from pathlib import Path
from typing import Optional


def get_data_directory() -> Path:
    """Export root, overridable with TAPSPECT_DATA_DIR."""
    env_override = os.environ.get("TAPSPECT_DATA_DIR")
    if env_override:
        return Path(env_override).expanduser()
    return Path.home() / "TapspectData"


def ensure_data_directory(data_dir: Optional[Path] = None) -> Path:
    """Create the directory if needed and check that it is writable."""
    if data_dir is None:
        data_dir = get_data_directory()

    data_dir.mkdir(parents=True, exist_ok=True)

    test_file = data_dir / ".write_test"
    try:
        test_file.write_text("test")
        test_file.unlink()
    except Exception as e:
        raise RuntimeError(f"Data directory {data_dir} is not writable: {e}")

    return data_dir
