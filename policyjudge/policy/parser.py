"""
Policy definition parser.

Loads policies from YAML or JSON files and writes them back.
"""

import json
import logging
from pathlib import Path
from typing import Union, Dict, Any, Tuple

import yaml

from policyjudge.policy.models import Policy

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")


class PolicyParser:
    """
    Parse and serialize policy definitions.

    Supports:
    - YAML files (.yaml, .yml)
    - JSON files (.json)
    - Direct string and dict parsing

    A document may hold the policy at its root or under a top-level
    ``policy`` key (the layout of a full engine config file).

    Example:
        ```python
        policy = PolicyParser.parse_file("content_safety.yaml")

        policy = PolicyParser.parse_string('''
        name: tone
        rules:
          - id: polite
            judge_prompt: Is the content polite?
        ''')
        ```
    """

    @staticmethod
    def parse_file(path: Union[str, Path]) -> Policy:
        """
        Parse a policy from file.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is unsupported
            ValidationError: If the policy is invalid
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Policy file not found: {path}")

        content = path.read_text(encoding="utf-8")
        return PolicyParser.parse_string(content, format=PolicyParser._format_for(path))

    @staticmethod
    def parse_string(content: str, format: str = "yaml") -> Policy:
        """
        Parse a policy from YAML or JSON text.

        Raises:
            ValueError: If format is unsupported or the document is empty
            ValidationError: If the policy is invalid
        """
        if format == "yaml":
            data = yaml.safe_load(content)
        elif format == "json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported format: {format}")

        if data is None:
            raise ValueError("Empty policy definition")
        if not isinstance(data, dict):
            raise ValueError(f"Policy definition must be a mapping, got {type(data).__name__}")

        return PolicyParser.parse_dict(data)

    @staticmethod
    def parse_dict(data: Dict[str, Any]) -> Policy:
        if "policy" in data and isinstance(data["policy"], dict) and "name" not in data:
            data = data["policy"]
        return Policy.model_validate(data)

    @staticmethod
    def dump(policy: Policy, path: Union[str, Path]) -> None:
        """Write a policy to ``path``; the suffix picks YAML or JSON."""
        path = Path(path)
        data = policy.to_dict()

        if PolicyParser._format_for(path) == "json":
            text = json.dumps(data, indent=2) + "\n"
        else:
            text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.debug(f"Wrote policy '{policy.name}' to {path}")

    @staticmethod
    def validate_file(path: Union[str, Path]) -> Tuple[bool, str]:
        """
        Check that a policy file loads.

        Returns:
            Tuple of (is_valid, message)
        """
        try:
            policy = PolicyParser.parse_file(path)
            version = f" v{policy.version}" if policy.version else ""
            return True, f"Valid policy: {policy.name}{version} ({len(policy.rules)} rules)"
        except FileNotFoundError as e:
            return False, f"File not found: {e}"
        except ValueError as e:
            return False, f"Invalid format: {e}"
        except Exception as e:
            return False, f"Validation error: {e}"

    @staticmethod
    def _format_for(path: Path) -> str:
        if path.suffix in _YAML_SUFFIXES:
            return "yaml"
        if path.suffix == ".json":
            return "json"
        raise ValueError(f"Unsupported file format: {path.suffix}")
