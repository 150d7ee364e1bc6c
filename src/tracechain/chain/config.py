"""
TraceChain Configuration

Tunable thresholds and collaborator settings, loadable from YAML.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List

import yaml

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


@dataclass
class ChainConfig:
    """
    Settings for one chaining run.

    Short codes and small counters make noisy chains; what counts as "short"
    varies by API, so the filter thresholds live here.

    Example YAML:
        min_string_length: 4
        numeric_threshold: 1000
        discriminator_markers: ["@type", "__typename"]
        use_ai: false
    """

    # Interestingness filter
    min_string_length: int = 4
    numeric_threshold: float = 1000
    discriminator_markers: List[str] = field(
        default_factory=lambda: ["@type", "__typename", "$type"]
    )
    extra_blacklisted_headers: List[str] = field(default_factory=list)

    # Locator stabilizer
    stabilize: bool = True
    descendant_depth: int = 3
    sibling_depth: int = 1
    array_window: int = 3

    # Collaborators
    use_ai: bool = True
    model: str = DEFAULT_MODEL
    retry_attempts: int = 3

    # Output
    collection_name: str = "Generated Collection"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChainConfig':
        """Create config from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'ChainConfig':
        """Load config from a YAML file."""
        with open(yaml_path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {yaml_path}, got {type(data).__name__}")
        return cls.from_dict(data or {})
