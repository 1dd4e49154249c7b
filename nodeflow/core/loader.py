"""Load graph documents from YAML or JSON files.

A graph document is a mapping with ``nodes`` and ``edges`` lists, in the
shape a node editor exports:

    nodes:
      - {id: a, type: input, data: {value: hello}}
      - {id: b, type: output}
    edges:
      - {source: a, target: b}
"""

import json
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, Field

from nodeflow.core.models import Edge, Node


class GraphLoadError(Exception):
    """Graph document could not be read or parsed."""

    pass


class GraphDocument(BaseModel):
    """Serializable container of a graph's nodes and edges."""

    name: str | None = None
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


def parse_graph(raw: Any, source: str = "<graph>") -> GraphDocument:
    """Validate an already-decoded document."""
    if not isinstance(raw, dict):
        raise GraphLoadError(
            f"Invalid graph content in '{source}'. Expected a mapping, got {type(raw).__name__}."
        )
    try:
        return GraphDocument.model_validate(raw)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise GraphLoadError(f"Invalid graph document '{source}': {details}") from e


def load_graph(path: str | Path) -> GraphDocument:
    """Read a graph document; ``.json`` files use JSON, anything else YAML.

    Raises:
        GraphLoadError: If the file is unreadable, malformed, or fails schema
            validation. Structural checks are left to the GraphValidator.
    """
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as e:
        raise GraphLoadError(f"Cannot read graph file '{path}': {e}") from e

    try:
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise GraphLoadError(f"Error parsing graph file '{path}': {e}") from e

    return parse_graph(raw, str(path))
