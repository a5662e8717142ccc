"""
Extract items and call edges from a Rust source tree using tree-sitter.

A build runs in two passes separated by barriers:

1. Pass 1 parses every file and extracts items and tests.
2. The type registry and the name index are built from *all* items.
3. Pass 2 walks every callable body with the complete registry,
   producing textual call edges and unresolved-call diagnostics.
4. Textual edge targets are resolved to item ids.

Incremental builds re-derive only the changed files plus the unchanged
files whose referenced types changed in the registry or whose call
targets map to different ids in the name index; everything else is
reused from the previously persisted output.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from ..config import Config, ConfigError
from . import documents
from .edges import (
    build_name_index, diff_name_index, resolve_edges, sort_edges, target_keys,
)
from .parsers import (
    CallEdge, ExtractedItem, FileAnalysis, TestInfo, UnresolvedEdge,
    get_parser, language_for,
)
from .type_registry import TypeRegistry, build_type_registry

_local = threading.local()


def _thread_parser(language: str):
    """One parser per worker thread; tree-sitter parsers are not shareable."""
    parsers = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = _local.parsers = {}
    if language not in parsers:
        parsers[language] = get_parser(language)
    return parsers[language]


@dataclass
class BuildResult:
    """Everything a build produced, in deterministic order."""
    target_dir: Path
    mode: str                                   # "full" or "incremental"
    files: dict[str, FileAnalysis] = field(default_factory=dict)
    edges: list[CallEdge] = field(default_factory=list)
    unresolved: list[UnresolvedEdge] = field(default_factory=list)
    registry: TypeRegistry = field(default_factory=TypeRegistry)
    name_index: dict[str, str] = field(default_factory=dict)
    dropped: int = 0
    rederived: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)
    warnings: list[dict[str, str]] = field(default_factory=list)

    @property
    def items(self) -> list[ExtractedItem]:
        return [i for path in sorted(self.files) for i in self.files[path].items]

    @property
    def tests(self) -> list[TestInfo]:
        return [t for path in sorted(self.files) for t in self.files[path].tests]

    @property
    def stats(self) -> dict:
        return {
            "total_files": len(self.files),
            "total_items": sum(len(f.items) for f in self.files.values()),
            "total_tests": sum(len(f.tests) for f in self.files.values()),
            "total_edges": len(self.edges),
            "total_unresolved": len(self.unresolved),
        }


class CodeTreeBuilder:
    """Runs full and incremental builds for one configuration."""

    def __init__(self, config: Config, *, workers: int = 1, verbose: bool = False):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.config = config
        self.workers = workers
        self.verbose = verbose
        self.errors: list[dict[str, str]] = []
        self.warnings: list[dict[str, str]] = []
        self._languages = self._check_extensions()

    def _check_extensions(self) -> dict[str, str]:
        languages = {}
        for ext in self.config.extensions:
            try:
                languages[ext] = language_for(ext)
            except ValueError as e:
                raise ConfigError(str(e)) from None
        return languages

    def _error(self, context: str, message: str) -> None:
        self.errors.append({"context": context, "message": message})

    def _warning(self, context: str, message: str) -> None:
        self.warnings.append({"context": context, "message": message})

    def _map(self, fn, values: list):
        """Apply fn to values in order, on the worker pool when there is one."""
        if self.workers == 1 or len(values) < 2:
            return [fn(v) for v in values]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(fn, values))

    def _language(self, rel_path: str) -> str:
        return self._languages[Path(rel_path).suffix]

    # ── Pass 1 ─────────────────────────────────────────────────────────

    def _extract_one(self, rel_path: str) -> FileAnalysis | None:
        parser = _thread_parser(self._language(rel_path))
        try:
            return parser.parse_file(self.config.target_dir / rel_path, rel_path)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            self._error(rel_path, f"Extraction failed: {e}")
            return None

    def _extract(self, rel_paths: list[str]) -> dict[str, FileAnalysis]:
        if self.verbose and rel_paths:
            print(f"  Extracting {len(rel_paths)} file(s)...")
        results = self._map(self._extract_one, rel_paths)
        return {r.path: r for r in results if r is not None}

    # ── Pass 2 ─────────────────────────────────────────────────────────

    def _calls_one(self, args):
        analysis, registry = args
        parser = _thread_parser(self._language(analysis.path))
        try:
            return parser.find_calls(analysis, registry)
        except ValueError as e:
            self._error(analysis.path, f"Call resolution failed: {e}")
            return [], []

    def _find_calls(self, analyses: Iterable[FileAnalysis],
                    registry: TypeRegistry) -> tuple[list[CallEdge], list[UnresolvedEdge]]:
        analyses = sorted(analyses, key=lambda a: a.path)
        if self.verbose and analyses:
            print(f"  Resolving calls in {len(analyses)} file(s)...")
        edges, unresolved = [], []
        for found, missed in self._map(self._calls_one, [(a, registry) for a in analyses]):
            edges.extend(found)
            unresolved.extend(missed)
        return edges, unresolved

    @staticmethod
    def _release_trees(analyses: Iterable[FileAnalysis]) -> None:
        for analysis in analyses:
            analysis.tree = None
            analysis.source = b""
            analysis.callables = []

    # ── Modes ──────────────────────────────────────────────────────────

    def run_full(self) -> BuildResult:
        rel_paths = self.config.collect_files()
        if self.verbose:
            print(f"Full build of {self.config.target_dir}")

        files = self._extract(rel_paths)
        items = [i for a in files.values() for i in a.items]
        registry = build_type_registry(items)
        index = build_name_index(items)
        if self.verbose:
            print(f"  {len(items)} items, {len(registry)} registry entries")

        raw_edges, unresolved = self._find_calls(files.values(), registry)
        edges, dropped = resolve_edges(raw_edges, index)
        self._release_trees(files.values())

        return BuildResult(
            target_dir=self.config.target_dir,
            mode="full",
            files=dict(sorted(files.items())),
            edges=sort_edges(edges),
            unresolved=_sort_unresolved(unresolved),
            registry=registry,
            name_index=index,
            dropped=dropped,
            rederived=sorted(files),
            errors=self.errors,
            warnings=self.warnings,
        )

    def _normalize_changed(self, changed_files: Iterable[str | Path]) -> set[str]:
        target = self.config.target_dir
        normalized = set()
        for entry in changed_files:
            path = Path(entry)
            if path.is_absolute():
                try:
                    path = path.resolve().relative_to(target)
                except ValueError:
                    self._warning(str(entry), "Outside the target directory, ignored")
                    continue
            normalized.add(path.as_posix())
        return normalized

    def _is_source(self, rel_path: str) -> bool:
        return (Path(rel_path).suffix in self._languages
                and not self.config.is_excluded(rel_path)
                and (self.config.target_dir / rel_path).is_file())

    def run_incremental(self, changed_files: Iterable[str | Path],
                        previous: documents.PreviousRun) -> BuildResult:
        changed = self._normalize_changed(changed_files)
        if self.verbose:
            print(f"Incremental build of {self.config.target_dir}: "
                  f"{len(changed)} changed file(s)")

        # Unchanged files come back from their persisted documents.
        files: dict[str, FileAnalysis] = {}
        removed: set[str] = set()
        for rel_path in previous.files:
            if rel_path in changed:
                continue
            if not self._is_source(rel_path):
                removed.add(rel_path)
                continue
            try:
                files[rel_path] = documents.load_file_document(
                    self.config.output_dir, rel_path)
            except (OSError, ValueError) as e:
                self._warning(rel_path, f"Stale document, re-extracting: {e}")
                changed.add(rel_path)

        present = sorted(p for p in changed if self._is_source(p))
        files.update(self._extract(present))
        removed |= {p for p in changed if p in previous.files and p not in files}

        items = [i for a in files.values() for i in a.items]
        registry = build_type_registry(items)
        index = build_name_index(items)

        # Unchanged files whose resolution depends on a changed type or on
        # a name that now maps elsewhere.
        changed_types = registry.diff(previous.registry)
        changed_names = diff_name_index(previous.name_index, index)
        dependents = sorted(
            path for path, a in files.items()
            if a.tree is None and (
                a.referenced_types & changed_types
                or any(key in changed_names
                       for target in a.call_targets for key in target_keys(target))
            )
        )
        if self.verbose and dependents:
            print(f"  {len(dependents)} dependent file(s) affected by "
                  f"{len(changed_types)} changed type(s), "
                  f"{len(changed_names)} changed name(s)")
        files.update(self._extract(dependents))

        rederived = {p for p in files if files[p].tree is not None}
        raw_edges, unresolved = self._find_calls(
            (files[p] for p in rederived), registry)
        edges, dropped = resolve_edges(raw_edges, index)
        self._release_trees(files[p] for p in rederived)

        # Reuse old results of files that were not re-derived, as long as
        # both endpoints still exist.
        item_ids = {i.id for i in items}
        source_ids = item_ids | {t.id for a in files.values() for t in a.tests}
        stale = rederived | removed
        for edge in previous.edges:
            if edge.file in stale:
                continue
            if edge.source in source_ids and edge.target in item_ids:
                edges.append(edge)
            else:
                dropped += 1
        unresolved.extend(
            u for u in previous.unresolved
            if u.file not in stale and u.source in source_ids
        )

        return BuildResult(
            target_dir=self.config.target_dir,
            mode="incremental",
            files=dict(sorted(files.items())),
            edges=sort_edges(edges),
            unresolved=_sort_unresolved(unresolved),
            registry=registry,
            name_index=index,
            dropped=dropped,
            rederived=sorted(rederived),
            removed=sorted(removed),
            errors=self.errors,
            warnings=self.warnings,
        )


def _sort_unresolved(unresolved: list[UnresolvedEdge]) -> list[UnresolvedEdge]:
    return sorted(unresolved, key=lambda u: (u.file, u.line, u.source, u.method))


def _report(result: BuildResult, verbose: bool) -> None:
    # Always print warnings and errors (regardless of verbose)
    if result.warnings:
        print(f"\n  {len(result.warnings)} warning(s):")
        for w in result.warnings:
            print(f"    [{w['context']}] {w['message']}")
    if result.errors:
        print(f"\n  {len(result.errors)} error(s):")
        for err in result.errors:
            print(f"    [{err['context']}] {err['message']}")
    if verbose:
        stats = result.stats
        print(f"Done ({result.mode}): {stats['total_items']} items, "
              f"{stats['total_tests']} tests, {stats['total_edges']} edges, "
              f"{stats['total_unresolved']} unresolved, {result.dropped} dropped")


# ── Public API ──────────────────────────────────────────────────────────


def build(
    config: Config,
    *,
    workers: int = 1,
    verbose: bool = False,
    write: bool = True,
) -> BuildResult:
    """Analyse every source file under the configured target directory.

    Args:
        config: Loaded configuration (see :func:`tracelight.config.load_config`).
        workers: Worker threads for both passes. 1 runs sequentially.
        verbose: If True, print progress information.
        write: If True, persist the artifacts under ``config.output_dir``.

    Returns:
        A BuildResult. Files that failed to parse are listed in ``errors``
        and otherwise skipped.

    Raises:
        ConfigError: If a configured extension has no parser.

    Example::

        from tracelight.config import load_config
        from tracelight.code_tree import build

        result = build(load_config("tracelight.json"))
        print(result.stats)
    """
    builder = CodeTreeBuilder(config, workers=workers, verbose=verbose)
    result = builder.run_full()
    if write:
        documents.write_outputs(config.output_dir, result)
        if verbose:
            print(f"  Saved to {config.output_dir}")
    _report(result, verbose)
    return result


def build_incremental(
    config: Config,
    changed_files: Iterable[str | Path],
    *,
    workers: int = 1,
    verbose: bool = False,
    write: bool = True,
) -> BuildResult:
    """Re-derive changed files and their dependents, reusing the rest.

    ``changed_files`` are paths relative to the target directory (or
    absolute paths inside it). Deleted files may be listed too. Falls back
    to a full build when no previous output exists.

    Raises:
        ConfigError: If a configured extension has no parser.
        DocumentError: If the previous global output is malformed.
    """
    previous = documents.load_previous(config.output_dir)
    if previous is None:
        if verbose:
            print("No previous output found, running a full build")
        return build(config, workers=workers, verbose=verbose, write=write)

    builder = CodeTreeBuilder(config, workers=workers, verbose=verbose)
    result = builder.run_incremental(changed_files, previous)
    if write:
        documents.write_outputs(
            config.output_dir, result,
            rewrite=set(result.rederived), remove=set(result.removed),
        )
        if verbose:
            print(f"  Saved to {config.output_dir}")
    _report(result, verbose)
    return result
