"""Persisted JSON artifacts consumed by the rendering layer.

Layout under the output directory::

    index.json                          global index with stats
    files/<source path>.json            per-file items and tests
    call_graph/edges.json               resolved call edges only
    diagnostics/unresolved_edges.json   unresolved calls, grouped
    diagnostics/type_registry.json      registry dump
    diagnostics/name_index.json         name→id index used for edge resolution
    diagnostics/resolution_stats.json   resolution rate

Per-file documents are a tagged union on ``kind``: ``"file"`` holds one
file's ``items``/``tests``; ``"bundle"`` holds several under ``files``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .edges import resolution_stats, summarize_unresolved
from .parsers.models import (
    CallEdge, ExtractedItem, FileAnalysis, TestInfo, UnresolvedEdge,
)
from .type_registry import TypeRegistry

SCHEMA_VERSION = "1.0"

INDEX_FILE = "index.json"
FILES_DIR = "files"
EDGES_FILE = "call_graph/edges.json"
UNRESOLVED_FILE = "diagnostics/unresolved_edges.json"
REGISTRY_FILE = "diagnostics/type_registry.json"
NAME_INDEX_FILE = "diagnostics/name_index.json"
STATS_FILE = "diagnostics/resolution_stats.json"


class DocumentError(ValueError):
    """A persisted document does not have a recognised shape."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")


def read_json(path: Path) -> Any:
    with open(path, encoding="utf8") as f:
        return json.load(f)


def file_document_path(rel_path: str) -> str:
    """Output-relative path of a source file's document."""
    return f"{FILES_DIR}/{rel_path}.json"


# ── Decoding ──────────────────────────────────────────────────────────


def _decode_file_entry(entry: dict) -> FileAnalysis:
    try:
        return FileAnalysis(
            path=entry["path"],
            items=[ExtractedItem.from_dict(i) for i in entry.get("items", [])],
            tests=[TestInfo.from_dict(t) for t in entry.get("tests", [])],
            referenced_types=set(entry.get("referenced_types", [])),
            call_targets=set(entry.get("call_targets", [])),
        )
    except (KeyError, TypeError) as e:
        raise DocumentError(f"Malformed file entry: {e!r}") from e


def decode_file_document(data: Any) -> list[FileAnalysis]:
    """Decode a per-file document into snapshots (no syntax trees)."""
    if not isinstance(data, dict):
        raise DocumentError("Per-file document must be a JSON object")
    kind = data.get("kind")
    if kind == "file":
        return [_decode_file_entry(data)]
    if kind == "bundle":
        files = data.get("files")
        if not isinstance(files, list):
            raise DocumentError("Bundle document requires a 'files' list")
        return [_decode_file_entry(f) for f in files]
    raise DocumentError(f"Unknown per-file document kind: {kind!r}")


def load_file_document(output_dir: Path, rel_path: str) -> FileAnalysis:
    """Load the persisted snapshot of one source file."""
    for snapshot in decode_file_document(read_json(output_dir / file_document_path(rel_path))):
        if snapshot.path == rel_path:
            return snapshot
    raise DocumentError(f"Document does not describe {rel_path}")


@dataclass
class PreviousRun:
    """What an incremental run reuses from the last persisted output."""
    files: list[str]
    edges: list[CallEdge]
    unresolved: list[UnresolvedEdge]
    registry: TypeRegistry
    name_index: dict[str, str]


def load_previous(output_dir: Path) -> PreviousRun | None:
    """Load the previous run's artifacts, or None if any of them is missing."""
    required = (INDEX_FILE, EDGES_FILE, UNRESOLVED_FILE, REGISTRY_FILE,
                NAME_INDEX_FILE)
    if not all((output_dir / name).is_file() for name in required):
        return None
    try:
        index = read_json(output_dir / INDEX_FILE)
        edges = read_json(output_dir / EDGES_FILE)
        unresolved = read_json(output_dir / UNRESOLVED_FILE)
        return PreviousRun(
            files=[f["path"] for f in index["files"]],
            edges=[CallEdge.from_dict(e) for e in edges["edges"]],
            unresolved=[UnresolvedEdge.from_dict(u) for u in unresolved["edges"]],
            registry=TypeRegistry.from_dict(read_json(output_dir / REGISTRY_FILE)),
            name_index=dict(read_json(output_dir / NAME_INDEX_FILE)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DocumentError(f"Malformed previous output in {output_dir}: {e!r}") from e


# ── Writing ───────────────────────────────────────────────────────────


def write_outputs(output_dir: Path, result, *,
                  rewrite: set[str] | None = None,
                  remove: set[str] = frozenset()) -> None:
    """Write every artifact of a build.

    Args:
        output_dir: Output root.
        result: The BuildResult to persist.
        rewrite: Source paths whose per-file documents are (re)written;
            None rewrites all of them.
        remove: Source paths whose per-file documents are deleted.
    """
    generated_at = _now()
    files = result.files

    for rel_path in sorted(files):
        if rewrite is None or rel_path in rewrite:
            write_json(output_dir / file_document_path(rel_path),
                       files[rel_path].to_document())
    for rel_path in remove:
        (output_dir / file_document_path(rel_path)).unlink(missing_ok=True)

    write_json(output_dir / INDEX_FILE, {
        "version": SCHEMA_VERSION,
        "generated_at": generated_at,
        "target_dir": str(result.target_dir),
        "stats": result.stats,
        "files": [{
            "path": rel_path,
            "items": len(files[rel_path].items),
            "tests": len(files[rel_path].tests),
            "document": file_document_path(rel_path),
        } for rel_path in sorted(files)],
    })

    write_json(output_dir / EDGES_FILE, {
        "generated_at": generated_at,
        "total_edges": len(result.edges),
        "edges": [e.to_dict() for e in result.edges],
    })

    summary = summarize_unresolved(result.unresolved)
    write_json(output_dir / UNRESOLVED_FILE, {
        "generated_at": generated_at,
        **summary,
        "edges": [u.to_dict() for u in result.unresolved],
    })
    write_json(output_dir / REGISTRY_FILE, result.registry.to_dict())
    write_json(output_dir / NAME_INDEX_FILE, dict(sorted(result.name_index.items())))
    write_json(output_dir / STATS_FILE, resolution_stats(
        len(result.edges), len(result.unresolved), result.dropped,
    ))
