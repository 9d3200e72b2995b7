"""
catalog_backend.hierarchy — Job tree from slash-delimited job file paths.

Two phases:
    1. Build. Walk each valid path from the root, find-or-create one node
       per segment in a mapping keyed by segment name. The last segment is
       a leaf carrying its Record.
    2. Materialize. One post-order pass computes counts and freezes the
       children into a deterministic order: directories before leaves,
       then ascending by name. Mapping iteration order is never observable.

Paths are accepted only under "<root prefix>/". Everything else is skipped
with a debug log: missing path, foreign prefix, empty segments, a leaf
colliding with a directory (either way round) and a second record for an
existing leaf path. The first record inserted for a path wins.

Invariants of the result:
    - leaf.count == 1 and leaf.children == ()
    - directory.count == number of leaf descendants
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional

from catalog_backend.constants import DEFAULT_JOBS_ROOT
from catalog_backend.records import Record

logger = logging.getLogger("catalog.hierarchy")


@dataclass(frozen=True, slots=True)
class TreeNode:
    name: str
    path: str
    depth: int
    is_leaf: bool
    count: int
    record: Optional[Record] = None
    children: tuple[TreeNode, ...] = ()

    def find(self, path: str) -> Optional[TreeNode]:
        """Descendant at a path relative to this node ("" is this node)."""
        node: TreeNode = self
        for segment in (s for s in path.split("/") if s):
            for child in node.children:
                if child.name == segment:
                    node = child
                    break
            else:
                return None
        return node

    def iter_leaves(self) -> Iterator[TreeNode]:
        """Leaves in presentation order."""
        if self.is_leaf:
            yield self
            return
        for child in self.children:
            yield from child.iter_leaves()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "depth": self.depth,
            "is_leaf": self.is_leaf,
            "count": self.count,
        }
        if self.is_leaf:
            out["record"] = self.record.summary() if self.record is not None else None
        else:
            out["children"] = [c.to_dict() for c in self.children]
        return out


class _BuildNode:
    __slots__ = ("name", "path", "depth", "record", "children")

    def __init__(self, name: str, path: str, depth: int, record: Optional[Record] = None) -> None:
        self.name = name
        self.path = path
        self.depth = depth
        self.record = record
        self.children: dict[str, _BuildNode] = {}

    @property
    def is_leaf(self) -> bool:
        return self.record is not None


def _segments(job_path: str, prefix: str) -> Optional[list[str]]:
    if not job_path or not job_path.startswith(prefix):
        return None
    segments = job_path[len(prefix):].split("/")
    if not segments or any(not s for s in segments):
        return None
    return segments


def _insert(root: _BuildNode, segments: list[str], record: Record) -> Optional[str]:
    """Insert one leaf. Returns a skip reason, or None on success.

    Conflicts are detected before anything is created, so a rejected path
    leaves no empty directories behind.
    """
    node = root
    for segment in segments[:-1]:
        child = node.children.get(segment)
        if child is None:
            break
        if child.is_leaf:
            return "leaf_in_directory_position"
        node = child
    else:
        existing = node.children.get(segments[-1])
        if existing is not None:
            return "duplicate_leaf" if existing.is_leaf else "leaf_collides_with_directory"

    node = root
    for segment in segments[:-1]:
        child = node.children.get(segment)
        if child is None:
            child = _BuildNode(
                name=segment,
                path=f"{node.path}/{segment}" if node.path else segment,
                depth=node.depth + 1,
            )
            node.children[segment] = child
        node = child

    leaf_name = segments[-1]
    node.children[leaf_name] = _BuildNode(
        name=leaf_name,
        path=f"{node.path}/{leaf_name}" if node.path else leaf_name,
        depth=node.depth + 1,
        record=record,
    )
    return None


def _materialize(node: _BuildNode) -> TreeNode:
    if node.is_leaf:
        return TreeNode(
            name=node.name,
            path=node.path,
            depth=node.depth,
            is_leaf=True,
            count=1,
            record=node.record,
        )
    ordered = sorted(node.children.values(), key=lambda c: (c.is_leaf, c.name))
    children = tuple(_materialize(c) for c in ordered)
    return TreeNode(
        name=node.name,
        path=node.path,
        depth=node.depth,
        is_leaf=False,
        count=sum(c.count for c in children),
        children=children,
    )


def build_hierarchy(records: Iterable[Record], root_prefix: str = DEFAULT_JOBS_ROOT) -> TreeNode:
    """Ordered, count-annotated tree of the records' job file paths.

    The returned root has name "", path "" and depth 0. An empty input
    yields a root with count 0 and no children.
    """
    prefix = root_prefix.rstrip("/") + "/"
    root = _BuildNode(name="", path="", depth=0)
    inserted = 0
    skipped = 0

    for record in records:
        job_path = record.geo.v6_job_file
        segments = _segments(job_path, prefix)
        reason = "outside_root" if segments is None else _insert(root, segments, record)
        if reason is not None:
            skipped += 1
            if job_path:
                logger.debug(json.dumps({
                    "event": "hierarchy_path_skipped",
                    "record_id": record.id,
                    "path": job_path,
                    "reason": reason,
                }))
            continue
        inserted += 1

    logger.debug(json.dumps({
        "event": "hierarchy_built",
        "root_prefix": root_prefix,
        "leaves": inserted,
        "skipped": skipped,
    }))
    return _materialize(root)
