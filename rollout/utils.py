import json
from pathlib import Path
from typing import Dict

import yaml

from rollout.constants import ARTIFACTS_DIR
from rollout.exceptions import RolloutConfigError


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def get_artifact_filepath(config: Dict) -> Path:
    """Returns the filepath of the artifact file."""
    artifact_config = config.get("artifacts") or {}
    artifact_dir = Path(artifact_config.get("dir", ARTIFACTS_DIR))
    filename = artifact_config.get("filename")
    if not filename:
        raise RolloutConfigError("artifact filename is not set in params file.")
    return artifact_dir / filename
