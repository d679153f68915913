"""Loading conditions from YAML documents and CLI flags.

A conditions document looks like::

    conditions:
      - env:
          PATH: /usr/local/bin:/usr/bin:/bin
      - files:
          /etc/passwd:
            regex: "nonroot:x:65532"
            mode: "0644"
          /etc/os-release:          # existence only
          /etc/apk/repositories:
            optional: true
      - dirs:
          /home/nonroot:
            mode: "0755"
          /app:
            mode: "0644"
            recursive: true
            files_only: true
      - permissions:
          /:
            block: "4755"
            override: [/usr/bin/su]

A bare list of items is accepted as well.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from oci_structure.models.common import format_mode
from oci_structure.models.conditions import (
    ConditionSet,
    EnvCondition,
    FileCondition,
    FileSpec,
)
from oci_structure.utils.errors import ValidationError, validate_env_var_name

CONDITION_KINDS = ("env", "files", "dirs", "permissions")


class ConditionsLoader(yaml.SafeLoader):
    """SafeLoader that keeps numeric scalars as the text written.

    Modes are octal whether or not they are quoted: ``mode: 755`` reaches
    ``parse_mode`` as ``"755"``, not as decimal 755. Env values keep their
    spelling too (``0x10`` stays ``0x10``).
    """


ConditionsLoader.add_constructor("tag:yaml.org,2002:int", yaml.SafeLoader.construct_scalar)
ConditionsLoader.add_constructor("tag:yaml.org,2002:float", yaml.SafeLoader.construct_scalar)


def _normalize_item(item: Any, position: int) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise ValidationError(f"condition #{position} must be a mapping", field="conditions")

    if "kind" in item:
        return {"kind": item["kind"], "want": item.get("want") or {}}

    keys = [k for k in item if k in CONDITION_KINDS]
    unknown = [k for k in item if k not in CONDITION_KINDS]
    if unknown:
        raise ValidationError(
            f"condition #{position} has unknown key(s): {', '.join(map(str, unknown))}",
            field="conditions",
        )
    if len(keys) != 1:
        raise ValidationError(
            f"condition #{position} must have exactly one of: {', '.join(CONDITION_KINDS)}",
            field="conditions",
        )
    kind = keys[0]
    want = item[kind] or {}
    if not isinstance(want, dict):
        raise ValidationError(f"condition #{position} ({kind}) must be a mapping", field=kind)
    if kind == "env":
        want = {str(k): "" if v is None else str(v) for k, v in want.items()}
    elif kind == "files":
        # A bare path means "must exist".
        want = {k: v if v is not None else {} for k, v in want.items()}
    return {"kind": kind, "want": want}


def parse_conditions(data: Any) -> ConditionSet:
    """Build a ConditionSet from a decoded YAML/JSON document.

    Raises:
        ValidationError: If the document is malformed
    """
    if data is None:
        return ConditionSet()
    if isinstance(data, dict):
        items = data.get("conditions")
        if items is None:
            items = [data] if any(k in data for k in CONDITION_KINDS) else []
    else:
        items = data
    if not isinstance(items, list):
        raise ValidationError("conditions must be a list", field="conditions")

    normalized = [_normalize_item(item, i + 1) for i, item in enumerate(items)]
    try:
        return ConditionSet.model_validate({"conditions": normalized})
    except PydanticValidationError as e:
        raise ValidationError(f"invalid conditions: {e}", field="conditions") from e


def load_conditions(path: Path | str) -> ConditionSet:
    """Load conditions from a YAML file.

    Raises:
        ValidationError: If the file is not valid YAML or not a valid document
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.load(f, Loader=ConditionsLoader)
        except yaml.YAMLError as e:
            raise ValidationError(f"invalid YAML in {path}: {e}", field="conditions") from e
    return parse_conditions(data)


def dump_conditions(conditions: ConditionSet) -> dict[str, Any]:
    """Render conditions in the short document form."""
    items: list[dict[str, Any]] = []
    for condition in conditions.conditions:
        if condition.kind == "env":
            want: dict[str, Any] = dict(condition.want)
        elif condition.kind == "files":
            want = {}
            for path, spec in condition.want.items():
                entry: dict[str, Any] = {}
                if spec.optional:
                    entry["optional"] = True
                if spec.mode is not None:
                    entry["mode"] = format_mode(spec.mode)
                if spec.regex:
                    entry["regex"] = spec.regex
                want[path] = entry or None
        elif condition.kind == "dirs":
            want = {
                path: {
                    "mode": format_mode(spec.mode),
                    "recursive": spec.recursive,
                    "files_only": spec.files_only,
                }
                for path, spec in condition.want.items()
            }
        else:
            want = {
                path: {"block": format_mode(spec.block), "override": list(spec.override)}
                for path, spec in condition.want.items()
            }
        items.append({condition.kind: want})
    return {"conditions": items}


def save_conditions(conditions: ConditionSet, path: Path | str) -> None:
    """Save conditions to a YAML file."""
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(dump_conditions(conditions), f, default_flow_style=False, sort_keys=False)


def parse_file_flag(value: str) -> tuple[str, FileSpec]:
    """Parse ``PATH[=REGEX]`` as given to ``--file``.

    Examples:
        ``/etc/passwd=.*nonroot:.*`` checks content; ``/etc/passwd`` only existence.
    """
    path, _, regex = value.partition("=")
    if not path.startswith("/"):
        raise ValidationError(f"file path must be absolute: {path!r}", field="file")
    try:
        return path, FileSpec(regex=regex or None)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid --file {value!r}: {e}", field="file") from e


def parse_env_flag(value: str) -> tuple[str, str]:
    """Parse ``KEY=VALUE`` as given to ``--env``."""
    name, sep, env_value = value.partition("=")
    if not sep:
        raise ValidationError(f"env flag must be KEY=VALUE: {value!r}", field="env")
    validate_env_var_name(name)
    return name, env_value


def conditions_from_flags(files: list[str] | None = None, envs: list[str] | None = None) -> ConditionSet:
    """Build conditions from repeated ``--file`` and ``--env`` flags."""
    items = []
    if files:
        items.append(FileCondition(want=dict(parse_file_flag(f) for f in files)))
    if envs:
        items.append(EnvCondition(want=dict(parse_env_flag(e) for e in envs)))
    return ConditionSet(conditions=items)
