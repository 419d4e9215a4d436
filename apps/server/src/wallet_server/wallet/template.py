from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from .errors import TemplateInvalid, TemplateMissing

_PLACEHOLDER_RE = re.compile(r"\{\{([^{}]+)\}\}")


def apply_template(template: str, values: Mapping[str, str]) -> str:
    """
    Replace every `{{name}}` token whose name is a key of `values`.

    Unknown tokens are left verbatim. Substitution is a single pass over the
    template, so a value that itself contains `{{...}}` is never expanded.
    """

    def _sub(m: re.Match[str]) -> str:
        name = m.group(1)
        if name in values:
            return values[name]
        return m.group(0)

    return _PLACEHOLDER_RE.sub(_sub, template)


def placeholders(template: str) -> set[str]:
    return set(_PLACEHOLDER_RE.findall(template))


def json_string_values(values: Mapping[str, str]) -> dict[str, str]:
    """
    Escape values for embedding inside a JSON string literal ("...{{x}}...").
    """
    return {k: json.dumps(str(v), ensure_ascii=False)[1:-1] for k, v in values.items()}


def load_template(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateMissing(f"Cannot read pass template {path}: {e}") from e


def _schema_path() -> Path:
    return Path(__file__).resolve().parents[1] / "schemas" / "pass.schema.json"


def validate_pass_document(data: Any) -> None:
    """
    Validate a rendered pass.json document against the bundled JSON Schema.
    Raises TemplateInvalid on validation errors.
    """
    schema = json.loads(_schema_path().read_text(encoding="utf-8"))
    v = Draft202012Validator(schema)
    errs = sorted(v.iter_errors(data), key=lambda e: list(e.path))
    if errs:
        msg = "; ".join([e.message for e in errs[:5]])
        raise TemplateInvalid(f"Rendered pass.json does not match schema: {msg}")


def render_pass_json(template: str, values: Mapping[str, str]) -> str:
    rendered = apply_template(template, json_string_values(values))
    try:
        data = json.loads(rendered)
    except json.JSONDecodeError as e:
        raise TemplateInvalid(f"Rendered pass.json is not valid JSON: {e}") from e
    validate_pass_document(data)
    return rendered
