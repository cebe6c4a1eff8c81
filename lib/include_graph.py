#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************************************************************************************************
# * BSD 3-Clause License
# *
# * Copyright (c) 2025, Mana Battery
# * All rights reserved.
# *
# * Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
# *
# * 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
# * 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
# *    documentation and/or other materials provided with the distribution.
# * 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
# *    software without specific prior written permission.
# *
# * THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
# * THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
# * CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
# * PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# * LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# * EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
# ****************************************************************************************************************************************************
"""Include graph store shared by successive show-includes parses.

Every file seen in a trace becomes one GraphItem keyed by its normalized path, so
headers reported by different translation units (or with different spelling) merge
into the same node. Edges are kept per item in discovery order, which mirrors the
textual #include order inside a translation unit.
"""

import os
import re
import json
import logging
import posixpath
from typing import Dict, Iterator, List, Optional, Set, Any
from dataclasses import dataclass, field

import networkx as nx
from networkx.readwrite import json_graph
from networkx.drawing.nx_pydot import write_dot

from lib.color_utils import print_error, print_success
from lib.constants import REPEATED_ITEM_MARKER, SUPPORTED_GRAPH_FORMATS

logger = logging.getLogger(__name__)

# Paths already absolute on a foreign host: "C:/..." and UNC "//server/share"
_DRIVE_PATH_PATTERN = re.compile(r"^[A-Za-z]:/")


def is_absolute_path(path: str) -> bool:
    """Check if path is absolute on this host or is a Windows drive/UNC path."""
    candidate = path.replace("\\", "/")
    return os.path.isabs(path) or bool(_DRIVE_PATH_PATTERN.match(candidate)) or candidate.startswith("//")


def normalize_path(path: str) -> str:
    """Canonicalize a file path for use as a graph key.

    Backslashes become forward slashes, relative paths are made absolute against the
    current directory, '.' and '..' segments are collapsed and the result is case-folded.
    Drive letter and UNC paths are treated as absolute regardless of the host.

    Args:
        path: Path as reported by a compiler or given by the user

    Returns:
        Normalized key string
    """
    candidate = path.replace("\\", "/")
    if _DRIVE_PATH_PATTERN.match(candidate) or candidate.startswith("//"):
        normalized = posixpath.normpath(candidate)
    else:
        normalized = os.path.abspath(candidate).replace("\\", "/")
    return normalized.lower()


def source_directory(path: str) -> str:
    """Directory containing path, keeping drive letter and UNC paths intact on any host."""
    candidate = path.replace("\\", "/")
    if _DRIVE_PATH_PATTERN.match(candidate) or candidate.startswith("//"):
        return posixpath.dirname(posixpath.normpath(candidate))
    return os.path.dirname(os.path.abspath(path))


@dataclass(eq=False)
class GraphItem:
    """A file node in the include graph.

    Attributes:
        key: Normalized path identifying the item
        path: Absolute path as first seen, kept for display
        includes: Outgoing edges in discovery order
    """

    key: str
    path: str
    includes: List["Include"] = field(default_factory=list, repr=False)

    @property
    def label(self) -> str:
        return os.path.basename(self.path.replace("\\", "/"))


@dataclass(frozen=True)
class Include:
    """Directed edge: the owning item's expansion includes included_file."""

    included_file: GraphItem


class IncludeGraph:
    """Mapping of normalized path to GraphItem with at most one item per path."""

    def __init__(self) -> None:
        self._items: Dict[str, GraphItem] = {}

    def create_or_get_item(self, path: str) -> GraphItem:
        """Return the item for path, creating it with no includes if it does not exist yet.

        Args:
            path: Absolute or relative file path in any separator style or case

        Returns:
            The single GraphItem for the normalized path
        """
        key = normalize_path(path)
        item = self._items.get(key)
        if item is None:
            display_path = path if is_absolute_path(path) else os.path.abspath(path)
            item = GraphItem(key=key, path=display_path)
            self._items[key] = item
            logger.debug("Created graph item %s", key)
        return item

    def get_item(self, path: str) -> Optional[GraphItem]:
        return self._items.get(normalize_path(path))

    def items(self) -> List[GraphItem]:
        """All items in creation order."""
        return list(self._items.values())

    def edge_count(self) -> int:
        return sum(len(item.includes) for item in self._items.values())

    def as_adjacency(self) -> Dict[str, List[str]]:
        """Plain key -> [included keys] mapping, in creation and discovery order."""
        return {key: [inc.included_file.key for inc in item.includes] for key, item in self._items.items()}

    def to_networkx(self) -> "nx.MultiDiGraph[str]":
        """Convert to a NetworkX multigraph keyed by normalized path.

        Repeated includes between the same two files are preserved as parallel edges;
        each edge carries its position in the parent's include list as 'order'.
        """
        G: nx.MultiDiGraph[str] = nx.MultiDiGraph()
        for item in self._items.values():
            G.add_node(item.key, path=item.path, label=item.label)
        for item in self._items.values():
            for order, include in enumerate(item.includes):
                G.add_edge(item.key, include.included_file.key, order=order)

        logger.debug("Built graph with %s nodes and %s edges", G.number_of_nodes(), G.number_of_edges())
        return G

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalize_path(path) in self._items

    def __iter__(self) -> Iterator[GraphItem]:
        return iter(list(self._items.values()))


def format_include_tree(root: GraphItem, max_depth: int = 0, indent: str = "  ") -> List[str]:
    """Render the includes reachable from root as indented text lines.

    An item that was already expanded earlier in the same rendering is printed once
    more with a marker but not expanded again, so shared headers and cycles stay finite.

    Args:
        root: Item to start from (printed at depth 0)
        max_depth: Maximum include depth to print (0 = unlimited)
        indent: Indentation added per depth level

    Returns:
        Lines of the rendered tree
    """
    lines: List[str] = [root.path]
    expanded: Set[str] = {root.key}

    # Entries: (item, depth, index of the next include to visit)
    stack: List[tuple[GraphItem, int, int]] = [(root, 0, 0)]
    while stack:
        item, depth, next_index = stack.pop()
        if next_index >= len(item.includes):
            continue
        stack.append((item, depth, next_index + 1))

        child = item.includes[next_index].included_file
        child_depth = depth + 1
        if child.key in expanded:
            lines.append(f"{indent * child_depth}{child.path} {REPEATED_ITEM_MARKER}")
            continue
        lines.append(f"{indent * child_depth}{child.path}")
        expanded.add(child.key)
        if max_depth <= 0 or child_depth < max_depth:
            stack.append((child, child_depth, 0))

    return lines


def export_include_graph(graph: IncludeGraph, filename: str) -> bool:
    """Export the include graph to a file; the extension selects the format.

    Supports: GraphML (.graphml), DOT (.dot), GEXF (.gexf), JSON (.json)

    Args:
        graph: Include graph to export
        filename: Output filename

    Returns:
        True if the file was written
    """
    ext = os.path.splitext(filename)[1].lower()
    G = graph.to_networkx()

    try:
        if ext not in SUPPORTED_GRAPH_FORMATS:
            logger.warning("Unsupported graph format: %s. Defaulting to GraphML.", ext)
            filename = filename + ".graphml"
            ext = ".graphml"

        if ext == ".graphml":
            nx.write_graphml(G, filename)
        elif ext == ".dot":
            write_dot(G, filename)
        elif ext == ".gexf":
            nx.write_gexf(G, filename)
        else:
            data: Dict[str, Any] = json_graph.node_link_data(G)
            with open(filename, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)

        logger.info("Exported include graph to %s", filename)
        print_success(f"Exported include graph to {filename}")
        return True

    except ImportError:
        logger.error("Missing dependency for graph export")
        print_error("Missing dependency for graph export. Install pydot for DOT format.")
        return False
    except Exception as e:
        logger.error("Failed to export graph: %s", e)
        print_error(f"Failed to export graph: {e}")
        return False
