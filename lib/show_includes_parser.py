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
"""Parse compiler show-includes output into an include graph.

cl.exe and clang-cl (/showIncludes) as well as clang (-Xclang --show-includes) report
every header opened during preprocessing as

    Note: including file: C:\\src\\a.h
    Note: including file:  C:\\src\\b.h

where the padding between "file: " and the path is the nesting depth (none = a direct
include of the translation unit, b.h above is included by a.h). The output is a
depth-first walk of one translation unit's include tree; merging it into a shared
IncludeGraph turns successive trees into a general graph.
"""

import os
import re
import logging
from typing import Iterator, List, Sequence, Tuple
from dataclasses import dataclass

from lib.constants import SHOW_INCLUDES_MARKER, TraceParseError
from lib.include_graph import GraphItem, Include, IncludeGraph, is_absolute_path, source_directory

logger = logging.getLogger(__name__)

_LINE_BREAK_PATTERN = re.compile(r"\r\n|\r|\n")


@dataclass
class TraceParseStats:
    """Summary of one parse.

    Attributes:
        lines: Total number of lines in the transcript
        trace_lines: Lines carrying the show-includes marker
        edges_added: Include edges appended to the graph
        max_depth: Deepest nesting level seen (0 = direct include)
    """

    lines: int = 0
    trace_lines: int = 0
    edges_added: int = 0
    max_depth: int = 0


def split_lines(text: str) -> List[str]:
    """Split text on \\r\\n, \\r and \\n alike."""
    return _LINE_BREAK_PATTERN.split(text)


def iter_trace_lines(lines: Sequence[str], marker: str = SHOW_INCLUDES_MARKER) -> Iterator[Tuple[int, str]]:
    """Yield (depth, reported_path) for every line that carries the marker.

    Depth is the number of spaces between the marker and the path, so a direct
    include of the translation unit has depth 0.
    Lines without the marker are build noise and are skipped.

    Args:
        lines: Transcript lines
        marker: Text that introduces an include trace entry

    Yields:
        Tuples of (depth, path text as reported by the compiler)
    """
    for line in lines:
        start = line.find(marker)
        if start < 0:
            continue
        start += len(marker)

        path_start = start
        while path_start < len(line) and line[path_start] == " ":
            path_start += 1

        yield path_start - start, line[path_start:].rstrip()


def resolve_include_path(reported_path: str, search_directories: Sequence[str]) -> str:
    """Resolve a reported include path to an absolute path.

    Absolute paths are returned as-is. Relative paths are tried against each search
    directory in order and the first existing file wins; if none matches the path is
    returned unchanged and the graph store makes it absolute.

    Args:
        reported_path: Path text from the trace line
        search_directories: Ordered include search directories

    Returns:
        Resolved path
    """
    if is_absolute_path(reported_path):
        return reported_path

    for directory in search_directories:
        candidate = os.path.join(directory, reported_path)
        if os.path.isfile(candidate):
            return candidate

    logger.debug("Could not resolve '%s' against %s search directories", reported_path, len(search_directories))
    return reported_path


def parse_show_includes(
    graph: IncludeGraph,
    root_path: str,
    search_directories: Sequence[str],
    diagnostic_text: str,
    marker: str = SHOW_INCLUDES_MARKER,
) -> TraceParseStats:
    """Merge one translation unit's show-includes transcript into graph.

    The stack holds the chain from the root down to the parent of the line being read.
    A line deeper than the chain descends into the most recently added include of the
    top item; a line shallower than the chain pops back to its ancestor. A depth jump of
    more than one level still descends exactly one level.

    Edges appended before an error stay in the graph.

    Args:
        graph: Shared graph to extend
        root_path: Translation unit that was compiled
        search_directories: Ordered include directories used for relative paths
        diagnostic_text: Full captured compiler output
        marker: Text that introduces an include trace entry

    Returns:
        TraceParseStats for the parse

    Raises:
        TraceParseError: If a line descends into an item with no includes from this trace.
            This is stricter than descending into whatever the item last included: a
            nested first line fails even when the root already has includes recorded by
            an earlier parse.
    """
    stats = TraceParseStats()
    lines = split_lines(diagnostic_text)
    stats.lines = len(lines)

    root = graph.create_or_get_item(root_path)
    stack: List[GraphItem] = [root]

    # The translation unit's own directory has the highest priority
    directories = [source_directory(root_path)] + list(search_directories)

    for depth, reported_path in iter_trace_lines(lines, marker):
        stats.trace_lines += 1
        stats.max_depth = max(stats.max_depth, depth)

        if depth >= len(stack):
            top = stack[-1]
            # Only includes recorded by this parse may be descended into
            if stats.edges_added == 0 or not top.includes:
                raise TraceParseError(f"Include at depth {depth} descends into '{top.path}' which has no includes recorded by this trace")
            if depth > len(stack):
                logger.debug("Depth jumped from %s to %s; descending one level", len(stack) - 1, depth)
            stack.append(top.includes[-1].included_file)
        while depth < len(stack) - 1:
            stack.pop()

        child = graph.create_or_get_item(resolve_include_path(reported_path, directories))
        stack[-1].includes.append(Include(child))
        stats.edges_added += 1

    logger.debug(
        "Parsed %s trace lines out of %s for %s (%s edges, max depth %s)", stats.trace_lines, stats.lines, root_path, stats.edges_added, stats.max_depth
    )
    return stats


def extend_graph_from_trace(
    graph: IncludeGraph,
    root_path: str,
    search_directories: Sequence[str],
    diagnostic_text: str,
    marker: str = SHOW_INCLUDES_MARKER,
) -> bool:
    """Extend graph from a transcript, reporting success instead of raising.

    Args:
        graph: Shared graph to extend
        root_path: Translation unit that was compiled
        search_directories: Ordered include directories used for relative paths
        diagnostic_text: Full captured compiler output
        marker: Text that introduces an include trace entry

    Returns:
        True if the whole transcript was parsed, False otherwise (partial edges remain)
    """
    try:
        parse_show_includes(graph, root_path, search_directories, diagnostic_text, marker)
    except Exception as e:
        logger.error("Failed to parse show-includes output of '%s': %s", root_path, e)
        return False

    return True
