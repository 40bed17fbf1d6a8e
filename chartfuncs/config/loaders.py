"""
Template, values and settings loaders.

Handles loading of template sources, values files and renderer settings from a
configuration directory laid out as:

    configs/
      settings.json
      templates/<name>
      values/<name>.yaml
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..template.functions import DEFAULT_BUFFER_SIZE

VALUES_SUFFIXES = (".yaml", ".yml", ".json")


def _contained(base: Path, name: str) -> Optional[Path]:
    """Resolve name under base, or None if the result lies outside base."""
    path = (base / name).resolve()
    try:
        path.relative_to(base.resolve())
    except ValueError:
        return None
    return path


@dataclass
class RenderSettings:
    """Renderer settings read from settings.json."""

    # Function names removed from the table templates can call
    disabled_functions: List[str] = field(default_factory=list)
    # Characters fromYamlDocument inspects to tell JSON from YAML
    document_buffer_size: int = DEFAULT_BUFFER_SIZE
    max_include_depth: int = 100

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RenderSettings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(unknown)}")
        return cls(**data)


class ConfigLoader:
    """Loads templates, values files and settings."""

    def __init__(self, config_dir: str = "configs"):
        self.config_dir = Path(config_dir)
        self.templates_dir = self.config_dir / "templates"
        self.values_dir = self.config_dir / "values"
        self.settings_file = self.config_dir / "settings.json"

    def load_settings(self) -> RenderSettings:
        """Load renderer settings, falling back to defaults if none are configured."""
        if not self.settings_file.exists():
            return RenderSettings()

        with open(self.settings_file) as f:
            return RenderSettings.from_dict(json.load(f))

    def load_template(self, template_name: str) -> str:
        """Load a template source by name."""
        template_file = _contained(self.templates_dir, template_name)
        if template_file is None or not template_file.is_file():
            raise FileNotFoundError(f"Template not found: {template_name}")

        return template_file.read_text()

    def load_values(self, values_name: str) -> Dict[str, Any]:
        """
        Load a values file by name.

        Args:
            values_name: File name, with or without a .yaml/.yml/.json suffix

        Returns:
            Parsed values; an empty file yields an empty dict
        """
        names = [values_name] + [f"{values_name}{suffix}" for suffix in VALUES_SUFFIXES]
        for name in names:
            values_file = _contained(self.values_dir, name)
            if values_file is not None and values_file.is_file():
                with open(values_file) as f:
                    values = yaml.safe_load(f)
                if values is None:
                    return {}
                if not isinstance(values, dict):
                    raise ValueError(f"Values file {values_file.name} must contain a mapping")
                return values

        raise FileNotFoundError(f"Values not found: {values_name}")

    def get_available_templates(self) -> List[str]:
        """Get list of all template names."""
        if not self.templates_dir.is_dir():
            return []
        return sorted(p.name for p in self.templates_dir.iterdir() if p.is_file())
