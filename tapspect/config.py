"""Inspector configuration: which captured events the CLI reports and where exports go."""

from pathlib import Path
from typing import List, Optional

from .utils.paths import ensure_data_directory


class InspectorConfig:
    """Output filter and export directory for a CLI run."""

    OUTPUT_PRESETS = {
        'all': ['*'],
        'errors-only': ['console:error', 'network:failed', 'navigation:error'],
        'console': ['console', 'navigation'],
        'network': ['network'],
        'minimal': ['console:error', 'navigation:error'],
    }

    def __init__(self, data_dir: Optional[str] = None, output: str = 'all'):
        """
        Args:
            data_dir: export directory, None for the default (created lazily)
            output: preset name or comma separated list like "console:error,network"
        """
        self._data_dir = data_dir
        self.output_filters = self._parse_output(output)

    @property
    def data_dir(self) -> Path:
        if self._data_dir is None:
            return ensure_data_directory()
        path = Path(self._data_dir).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _parse_output(self, output: str) -> List[str]:
        if output in self.OUTPUT_PRESETS:
            return self.OUTPUT_PRESETS[output]
        return [f.strip() for f in output.split(',') if f.strip()]

    def should_report(self, data_type: str, level: Optional[str] = None) -> bool:
        """Whether an event of ``data_type`` (and optional ``level``) is reported."""
        if '*' in self.output_filters:
            return True
        if data_type in self.output_filters:
            return True
        if level and f"{data_type}:{level}" in self.output_filters:
            return True
        return False
