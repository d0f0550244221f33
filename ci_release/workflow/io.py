"""Workflow loading.

This module loads workflow definitions from YAML/JSON files and turns
any parse or validation failure into a ConfigurationError, so a broken
definition is reported before any job starts.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ci_release.errors import ConfigurationError
from ci_release.workflow.schema import WorkflowSchema


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed JSON content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_workflow_data(data: dict[str, Any]) -> WorkflowSchema:
    """Parse and validate workflow data using the schema.

    Args:
        data: Dictionary containing workflow data.

    Returns:
        Validated WorkflowSchema instance.

    Raises:
        ConfigurationError: If data does not match the schema.
    """
    data = dict(data)
    # YAML 1.1 reads a bare `on:` key as boolean True
    for alias in (True, "on"):
        if alias in data and "triggers" not in data:
            data["triggers"] = data.pop(alias)

    try:
        return WorkflowSchema.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid workflow definition:\n{e}") from e


def load_workflow(path: Path) -> WorkflowSchema:
    """Load and validate a workflow file (format chosen by extension).

    Args:
        path: Path to a .yaml/.yml or .json file.

    Returns:
        Validated WorkflowSchema instance.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            data = load_yaml(path)
        elif suffix == ".json":
            data = load_json(path)
        else:
            raise ConfigurationError(
                f"Unsupported workflow format: {path.suffix or '(none)'}"
            )
    except FileNotFoundError as e:
        raise ConfigurationError(f"Workflow file not found: {path}") from e
    except (yaml.YAMLError, json.JSONDecodeError, ValueError) as e:
        raise ConfigurationError(f"Failed to parse {path}: {e}") from e

    return parse_workflow_data(data)


def workflow_to_yaml_string(workflow: WorkflowSchema) -> str:
    """Render a workflow as YAML.

    Args:
        workflow: WorkflowSchema to render.

    Returns:
        YAML string.
    """
    return yaml.safe_dump(
        workflow.model_dump(mode="json", exclude_none=True),
        sort_keys=False,
        default_flow_style=False,
    )


__all__ = [
    "load_json",
    "load_workflow",
    "load_yaml",
    "parse_workflow_data",
    "workflow_to_yaml_string",
]
