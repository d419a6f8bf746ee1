"""Safe YAML loader."""
from pathlib import Path

import yaml


def load_yaml(path: str | Path) -> dict:
    with open(path) as fh:
        return yaml.safe_load(fh) or {}
