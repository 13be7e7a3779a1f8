"""Front-matter codec: provenance metadata inside artifacts.

Documents carry a fenced YAML block under the ``lattice`` key::

    ---
    lattice:
      artifact: action-plan
      module: action-plan
      version: 1.0.0
      created: '2026-01-05T10:00:00Z'
    ---

    # Plan
    ...

JSON artifacts carry the same mapping under the reserved top-level key
``_lattice``.
"""

from __future__ import annotations

import json
from typing import Any

import yaml

from lattice.errors import MalformedFrontMatterError, MissingFrontMatterError
from lattice.models.artifacts import ArtifactMetadata

FENCE = "---\n"
CLOSING_FENCE = "\n---\n"
FRONT_MATTER_KEY = "lattice"
JSON_METADATA_KEY = "_lattice"


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _decode(content: bytes | str) -> str:
    if isinstance(content, bytes):
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedFrontMatterError(f"document is not UTF-8: {exc}") from exc
    return content


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def parse_document(content: bytes | str) -> tuple[ArtifactMetadata, str]:
    """Split a document into ``(metadata, body)``.

    Raises ``MissingFrontMatterError`` when the document does not open with
    a fence and ``MalformedFrontMatterError`` when the block is unreadable.
    """
    text = normalize_newlines(_decode(content))
    if not text.startswith(FENCE):
        raise MissingFrontMatterError("document does not start with front matter")
    rest = text[len(FENCE):]
    header, sep, body = rest.partition(CLOSING_FENCE)
    if not sep:
        raise MalformedFrontMatterError("front matter is not terminated")
    try:
        envelope = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        raise MalformedFrontMatterError(f"front matter is not valid YAML: {exc}") from exc
    if not isinstance(envelope, dict) or not isinstance(envelope.get(FRONT_MATTER_KEY), dict):
        raise MalformedFrontMatterError(f"front matter has no '{FRONT_MATTER_KEY}' mapping")
    try:
        meta = ArtifactMetadata.from_wire(envelope[FRONT_MATTER_KEY])
    except ValueError as exc:
        raise MalformedFrontMatterError(str(exc)) from exc
    if body.startswith("\n"):
        body = body[1:]
    return meta, body


def write_document(meta: ArtifactMetadata, body: bytes | str) -> str:
    """Render ``meta`` as fenced front matter followed by ``body``."""
    header = yaml.safe_dump(
        {FRONT_MATTER_KEY: meta.to_wire()},
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )
    return f"{FENCE}{header.rstrip(chr(10))}{CLOSING_FENCE}\n{normalize_newlines(_decode(body))}"


def strip_front_matter(content: bytes | str) -> str:
    """Return the body of a document, or the whole text when it has no front matter."""
    text = normalize_newlines(_decode(content))
    try:
        _, body = parse_document(text)
    except (MissingFrontMatterError, MalformedFrontMatterError):
        return text
    return body


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def parse_json(content: bytes | str) -> tuple[ArtifactMetadata, dict[str, Any]]:
    """Return ``(metadata, payload)`` from a JSON artifact.

    The payload keeps every key except ``_lattice``.
    """
    try:
        payload = json.loads(_decode(content) or "null")
    except json.JSONDecodeError as exc:
        raise MalformedFrontMatterError(f"artifact is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedFrontMatterError("JSON artifact must be an object")
    if JSON_METADATA_KEY not in payload:
        raise MissingFrontMatterError(f"JSON artifact has no '{JSON_METADATA_KEY}' key")
    try:
        meta = ArtifactMetadata.from_wire(payload.pop(JSON_METADATA_KEY))
    except ValueError as exc:
        raise MalformedFrontMatterError(str(exc)) from exc
    return meta, payload


def write_json(meta: ArtifactMetadata, body: bytes | str | dict[str, Any] | None) -> str:
    """Encode ``body`` with ``_lattice`` injected (or overwritten).

    An empty body is treated as ``{}``.
    """
    if isinstance(body, dict):
        payload = dict(body)
    else:
        text = _decode(body or b"").strip()
        try:
            payload = json.loads(text) if text else {}
        except json.JSONDecodeError as exc:
            raise MalformedFrontMatterError(f"body is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise MalformedFrontMatterError("JSON artifact body must be an object")
    payload[JSON_METADATA_KEY] = meta.to_wire()
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
