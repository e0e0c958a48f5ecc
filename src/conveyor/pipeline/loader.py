"""Loading and saving pipeline definition files.

Definitions are YAML (``.yml``/``.yaml``) or JSON (``.json``) documents
mirroring :class:`PipelineDefinition`::

    name: web
    trigger: {branch: "main"}
    stages:
      - name: Build
        steps:
          - name: image
            kind: dockerBuild
            config: {image: web, tag: "${env.BUILD_NUMBER}"}
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from conveyor.errors import PipelineDefinitionError
from conveyor.models.pipeline import PipelineDefinition

logger = logging.getLogger(__name__)

_JSON_SUFFIXES = {".json"}
_YAML_SUFFIXES = {".yml", ".yaml"}


def parse_definition(data: Any, source: str = "<data>") -> PipelineDefinition:
    """Validate a decoded document as a pipeline definition.

    Raises:
        PipelineDefinitionError: If the document does not describe a pipeline
    """
    if not isinstance(data, dict):
        raise PipelineDefinitionError(f"{source}: top level must be a mapping")
    try:
        return PipelineDefinition.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise PipelineDefinitionError(f"{source}: {details}") from e


def loads(text: str, fmt: str = "yaml", source: str = "<string>") -> PipelineDefinition:
    """Parse definition text in the given format ("yaml" or "json")."""
    try:
        if fmt == "json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise PipelineDefinitionError(f"{source}: cannot parse {fmt}: {e}") from e
    return parse_definition(data, source)


def load(path: Path | str) -> PipelineDefinition:
    """Load a pipeline definition file.

    Raises:
        PipelineDefinitionError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise PipelineDefinitionError(f"Pipeline file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PipelineDefinitionError(f"Cannot read {path}: {e}") from e

    fmt = "json" if path.suffix.lower() in _JSON_SUFFIXES else "yaml"
    if path.suffix.lower() not in _JSON_SUFFIXES | _YAML_SUFFIXES:
        logger.debug(f"Unknown suffix {path.suffix!r}, parsing {path.name} as YAML")
    definition = loads(text, fmt=fmt, source=str(path))
    logger.info(f"Loaded pipeline '{definition.name}' from {path}")
    return definition


def to_document(definition: PipelineDefinition) -> dict[str, Any]:
    """Plain-data form of a definition, using the file format's key names."""
    return definition.model_dump(mode="json", by_alias=True, exclude_defaults=True)


def dumps(definition: PipelineDefinition, fmt: str = "yaml") -> str:
    """Serialize a definition so that ``loads`` yields an equal definition."""
    document = to_document(definition)
    if fmt == "json":
        return json.dumps(document, ensure_ascii=False, indent=2)
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)


def dump(definition: PipelineDefinition, path: Path | str) -> Path:
    """Write a definition file, choosing the format from the suffix."""
    path = Path(path)
    fmt = "json" if path.suffix.lower() in _JSON_SUFFIXES else "yaml"
    path.write_text(dumps(definition, fmt=fmt), encoding="utf-8")
    return path
