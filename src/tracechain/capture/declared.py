"""
Loader for user-declared values.

A declared value names a literal the user wants parameterized wherever a
request uses it, e.g. a username or a tenant id. Accepts JSON or YAML:

    - name: username
      search_value: admin
      initializer: "Read the username from the environment"
"""

from pathlib import Path
from typing import Any, List

import yaml

from ..chain.models import DeclaredValue


def parse_declared_values(data: Any) -> List[DeclaredValue]:
    """
    Raises:
        ValueError: If the data is not a list of {name, search_value|value} records
    """
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of declared values, got {type(data).__name__}")

    declared = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValueError(f"Declared value #{i} is not a mapping")

        name = item.get('name')
        value = item.get('search_value', item.get('value'))
        if not name or value is None or value == '':
            raise ValueError(f"Declared value #{i} needs 'name' and 'search_value'")

        declared.append(DeclaredValue(
            name=str(name),
            value=str(value),
            initializer=item.get('initializer') or None
        ))
    return declared


def load_declared_values(file_path: str) -> List[DeclaredValue]:
    """
    Load declared values from a .json, .yaml or .yml file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the content is malformed
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Variables file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        # YAML is a superset of JSON, so one parser covers both
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid variables file {path}: {e}") from e

    return parse_declared_values(data)
