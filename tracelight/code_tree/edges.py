"""Map textual call targets to item ids.

Every extracted item registers its bare name and, for methods, its
``Owner::method`` form in a name→id index. A target is resolved by

1. exact match of the full textual target, then
2. the last two ``::`` segments (``Type::method``) when the target is
   qualified more deeply.

There is intentionally no bare-method-name fallback: it matched calls such
as ``NewA::new`` to an unrelated ``TypeB::new``. Targets that resolve to
nothing are calls into code outside the analysed tree and are dropped.
"""

from __future__ import annotations

import pandas as pd

from .parsers.models import CallEdge, ExtractedItem, UnresolvedEdge


def build_name_index(items: list[ExtractedItem]) -> dict[str, str]:
    """Name→id index over all items; later registrations win on collision.

    Items are registered in id order, so the winner of a collision is the
    same on every run.
    """
    index: dict[str, str] = {}
    for item in sorted(items, key=lambda i: i.id):
        index[item.name] = item.id
        if item.kind == "method" and item.impl_for:
            index[f"{item.impl_for}::{item.name}"] = item.id
    return index


def target_keys(target: str) -> list[str]:
    """Index keys consulted for a textual target, in lookup order."""
    keys = [target]
    parts = target.split("::")
    if len(parts) > 2:
        keys.append("::".join(parts[-2:]))
    return keys


def resolve_target(target: str, index: dict[str, str]) -> str | None:
    for key in target_keys(target):
        found = index.get(key)
        if found is not None:
            return found
    return None


def diff_name_index(old: dict[str, str], new: dict[str, str]) -> set[str]:
    """Keys added, removed, or pointing at a different id."""
    return {key for key in old.keys() | new.keys() if old.get(key) != new.get(key)}


def resolve_edges(edges: list[CallEdge],
                  index: dict[str, str]) -> tuple[list[CallEdge], int]:
    """Resolve textual edges to item ids.

    Returns the resolved edges and the number of dropped edges.
    """
    resolved = []
    dropped = 0
    for edge in edges:
        target_id = resolve_target(edge.target, index)
        if target_id is None:
            dropped += 1
            continue
        resolved.append(CallEdge(
            source=edge.source,
            target=target_id,
            file=edge.file,
            line=edge.line,
            context=edge.context,
        ))
    return resolved, dropped


def sort_edges(edges: list[CallEdge]) -> list[CallEdge]:
    return sorted(edges, key=lambda e: (e.file, e.line, e.source, e.target))


# ── Diagnostics ────────────────────────────────────────────────────────


def build_edge_frame(edges: list[CallEdge]) -> pd.DataFrame:
    """Resolved edges as a DataFrame with caller/callee/file/line/context columns."""
    columns = ["caller", "callee", "file", "line", "context"]
    if not edges:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([{
        "caller": e.source,
        "callee": e.target,
        "file": e.file,
        "line": e.line,
        "context": e.context.type if e.context else "normal",
    } for e in edges], columns=columns)


def summarize_unresolved(unresolved: list[UnresolvedEdge]) -> dict:
    """Count unresolved calls by reason and by method name, most frequent first."""
    if not unresolved:
        return {"total": 0, "by_reason": {}, "by_method": {}}
    df = pd.DataFrame([u.to_dict() for u in unresolved])
    by_reason = df.groupby("reason").size().sort_values(ascending=False, kind="stable")
    by_method = df.groupby("method").size().sort_values(ascending=False, kind="stable")
    reasons = df.groupby("method")["reason"].unique()
    return {
        "total": len(df),
        "by_reason": {str(k): int(v) for k, v in by_reason.items()},
        "by_method": {
            str(method): {"count": int(count), "reasons": sorted(str(r) for r in reasons[method])}
            for method, count in by_method.items()
        },
    }


def resolution_stats(resolved: int, unresolved: int, dropped: int) -> dict:
    """Edge counts and the share of recorded call sites that resolved.

    Dropped edges (calls into code outside the tree) are not counted
    against the rate.
    """
    attempted = resolved + unresolved
    rate = resolved / attempted if attempted else 1.0
    return {
        "resolved": resolved,
        "unresolved": unresolved,
        "dropped": dropped,
        "resolution_rate": round(rate, 4),
    }
