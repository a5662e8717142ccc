#!/usr/bin/env python3
"""Extract a call graph from a Rust source directory.

Demonstrates: code_tree.build, the edge DataFrame, unresolved-call summary.

Generates: index.json, per-file documents, call_graph/edges.json and
           diagnostics under <src>/../public/data.

Requires: pip install tracelight
"""

import sys
from pathlib import Path

from tracelight.code_tree import build
from tracelight.code_tree.edges import build_edge_frame, summarize_unresolved
from tracelight.config import config_from_dict

# -- Build -----------------------------------------------------------------

src_dir = sys.argv[1] if len(sys.argv) > 1 else "."
src_path = Path(src_dir).resolve()

if not src_path.is_dir():
    print(f"Not a directory: {src_path}", file=sys.stderr)
    sys.exit(1)

config = config_from_dict(
    {"target_dir": src_path.name, "exclude": ["target/"]},
    src_path.parent,
)
print(f"Analysing {src_path} ...")
result = build(config, verbose=True)

stats = result.stats
print(f"\nExtracted: {stats['total_items']} items, {stats['total_tests']} tests "
      f"in {stats['total_files']} files")
print(f"Saved to {config.output_dir}")

# -- Example queries -------------------------------------------------------

df = build_edge_frame(result.edges)

# Most-called items (by incoming edges)
print("\n--- Most-called items ---")
for callee, callers in df.groupby("callee").size().nlargest(10).items():
    print(f"  {callee}: {callers} call sites")

# Calls made under a branch or loop
print("\n--- Calls by control-flow context ---")
for context, count in df["context"].value_counts().items():
    print(f"  {context}: {count}")

# Why receivers could not be typed
summary = summarize_unresolved(result.unresolved)
print(f"\n--- Unresolved method calls ({summary['total']}) ---")
for reason, count in summary["by_reason"].items():
    print(f"  {reason}: {count}")
