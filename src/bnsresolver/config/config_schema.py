"""JSON Schema-based validation for the bnsresolver YAML configuration.

This module expands configuration variables and validates the result against
the JSON Schema shipped next to it as ``config-schema.json``.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger(__name__)

_VAR_NAME = re.compile(r"[A-Z_][A-Z0-9_]*")
_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def _check_var_keys(variables: Dict[Any, Any]) -> None:
    for k in variables.keys():
        if not isinstance(k, str):
            raise ValueError("config.vars keys must be strings")
        if k != k.upper() or not _VAR_NAME.fullmatch(k):
            raise ValueError(f"config.vars key {k!r} must be ALL_UPPERCASE [A-Z_][A-Z0-9_]*")


def expand_variables(cfg: Dict[str, Any]) -> None:
    """Brief: Expand `vars` references through the config and drop the group.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - 'variables' is accepted as an alias of 'vars'.
      - A string that is exactly `${KEY}` is replaced by the variable's YAML
        value (keeping its type); `${KEY}` inside longer strings is replaced
        textually. Unknown keys are left untouched.
      - Variables may reference other variables; cycles raise ValueError.

    Example:
      >>> cfg = {"vars": {"DB": "bns"}, "database": {"database": "${DB}"}}
      >>> expand_variables(cfg); cfg
      {'database': {'database': 'bns'}}
    """

    variables = cfg.pop("vars", None)
    legacy = cfg.pop("variables", None)
    if variables is None:
        variables = legacy
    elif isinstance(legacy, dict):
        variables = {**legacy, **variables}
    if variables is None:
        return
    if not isinstance(variables, dict):
        raise ValueError("config.vars must be a mapping when present")
    _check_var_keys(variables)

    resolved: Dict[str, Any] = {}

    def _resolve(key: str, stack: Set[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            raise ValueError(f"config.vars contains a cycle through {key!r}")
        stack.add(key)
        value = _expand(variables[key], stack)
        stack.discard(key)
        resolved[key] = value
        return value

    def _expand(obj: Any, stack: Set[str]) -> Any:
        if isinstance(obj, str):
            whole = _VAR_PATTERN.fullmatch(obj)
            if whole and whole.group(1) in variables:
                return copy.deepcopy(_resolve(whole.group(1), stack))

            def _repl(match: "re.Match[str]") -> str:
                key = match.group(1)
                if key not in variables:
                    return match.group(0)
                value = _resolve(key, stack)
                if isinstance(value, bool):
                    return "true" if value else "false"
                if value is None:
                    return "null"
                if isinstance(value, (int, float, str)):
                    return str(value)
                return json.dumps(value)

            return _VAR_PATTERN.sub(_repl, obj)
        if isinstance(obj, list):
            return [_expand(item, stack) for item in obj]
        if isinstance(obj, dict):
            return {k: _expand(v, stack) for k, v in obj.items()}
        return obj

    for top_key in list(cfg.keys()):
        cfg[top_key] = _expand(cfg[top_key], set())


def get_default_schema_path() -> Path:
    """Return the path of the config-schema.json packaged with bnsresolver."""
    return Path(__file__).resolve().with_name("config-schema.json")


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into one readable message.

    Inputs:
      - errors: jsonschema ValidationError instances.
      - config_path: Optional path of the YAML file being validated.

    Outputs:
      - Multi-line string, one '- <path>: <message>' line per error.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        lines.append(f"- {instance_path}: {err.message}")
    return "\n".join(lines)


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = None,
) -> None:
    """Brief: Expand variables in cfg and validate it against the JSON Schema.

    Inputs:
      - cfg: Parsed configuration mapping (mutated by variable expansion).
      - schema_path: Optional explicit schema location.
      - config_path: Optional config file path used in error messages.

    Outputs:
      - None.

    Raises:
      - ValueError: when variables are malformed or the config is invalid.
    """

    expand_variables(cfg)
    schema = _load_schema(schema_path)
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if errors:
        message = _format_errors(errors, config_path=config_path)
        logger.error("%s", message)
        raise ValueError(message)
