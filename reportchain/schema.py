"""JSON Schema validation for client documents.

Validates the deployment section of a config file and the rejection-reason
table against the schemas shipped in reportchain/schemas. Cross-schema $ref
resolution goes through a referencing Registry built once per process.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, List

import yaml
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

PACKAGE_ROOT = Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"
DATA_DIR = PACKAGE_ROOT / "data"


def load_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


@lru_cache(maxsize=1)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Registry of every *.schema.json so $ref resolves by $id."""
    resources = []
    for schema_path in sorted(schemas_dir.glob("*.schema.json")):
        schema = load_json(schema_path)
        schema_id = schema.get("$id") or f"https://schemas.reportchain.dev/{schema_path.name}"
        resources.append((schema_id, Resource.from_contents(schema, default_specification=DRAFT202012)))
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(schema_name: str) -> Draft202012Validator:
    """Cached validator for a schema file in reportchain/schemas."""
    schema = load_json(SCHEMAS_DIR / schema_name)
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_document(doc: Any, schema_name: str) -> List[str]:
    """Validation messages for doc; empty when valid."""
    validator = schema_validator(schema_name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(doc), key=lambda e: [str(p) for p in e.path])
    ]
