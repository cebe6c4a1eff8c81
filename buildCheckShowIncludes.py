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
"""Reconstruct the include graph of translation units from compiler show-includes output.

PURPOSE:
    Shows exactly which headers the compiler opened for a translation unit, and through
    which parent header, for one concrete build configuration. Several translation units
    are merged into one graph so shared headers appear once with all their parents.

WHAT IT DOES:
    - Recompiles each source from compile_commands.json with include tracing enabled
      (/showIncludes for cl/clang-cl, -Xclang --show-includes for clang)
    - Or parses previously captured compiler output (--trace-file)
    - Rebuilds the nesting from the indentation of the "Note: including file:" lines
    - Prints the include tree of every traced file
    - Optionally exports the merged graph (GraphML, DOT, GEXF, JSON)

REQUIREMENTS:
    - Python 3.8+
    - networkx, packaging
    - colorama (optional, for colored output), pydot (optional, for DOT export)
    - The compiler named in compile_commands.json must be in PATH

EXAMPLES:
    # Trace every translation unit of a build
    ./buildCheckShowIncludes.py ../build/release/

    # Trace two files and export the merged graph
    ./buildCheckShowIncludes.py ../build/release/ --source src/a.cpp --source src/b.cpp --export includes.graphml

    # Parse a saved MSVC build log for main.cpp
    ./buildCheckShowIncludes.py --trace-file src/main.cpp=build.log -I include
"""
import sys
import logging
import argparse
from typing import List, Optional, Tuple

from lib.color_utils import Colors, print_error, print_success, print_warning
from lib.constants import (
    DEFAULT_MAX_TREE_DEPTH,
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
    REPEATED_ITEM_MARKER,
    SUPPORTED_GRAPH_FORMATS,
    ArgumentError,
)
from lib.compile_db_backend import CompileDatabaseBackend
from lib.include_graph import IncludeGraph, export_include_graph, format_include_tree
from lib.show_includes_parser import extend_graph_from_trace
from lib.trace_session import IncludeTraceSession

logger = logging.getLogger(__name__)


def parse_trace_file_argument(value: str) -> Tuple[str, str]:
    """Split a ROOT=FILE --trace-file argument.

    Raises:
        ArgumentError: If the value has no '=' or an empty side
    """
    root, sep, trace_file = value.partition("=")
    if not sep or not root or not trace_file:
        raise ArgumentError(f"--trace-file expects ROOT=FILE, got '{value}'")
    return root, trace_file


def trace_saved_outputs(graph: IncludeGraph, trace_files: List[str], include_dirs: List[str]) -> List[Tuple[str, bool]]:
    """Merge saved compiler transcripts into graph.

    Returns:
        List of (root path, success) in argument order
    """
    results: List[Tuple[str, bool]] = []
    for value in trace_files:
        root, trace_file = parse_trace_file_argument(value)
        try:
            with open(trace_file, "r", encoding="utf-8", errors="replace", newline="") as f:
                text = f.read()
        except IOError as e:
            logger.error("Failed to read trace file %s: %s", trace_file, e)
            results.append((root, False))
            continue
        results.append((root, extend_graph_from_trace(graph, root, include_dirs, text)))
    return results


def trace_build_directory(graph: IncludeGraph, build_dir: str, sources: List[str]) -> List[Tuple[str, bool]]:
    """Compile sources from build_dir's compilation database with tracing and merge them.

    Returns:
        List of (root path, success) in trace order
    """
    backend = CompileDatabaseBackend(build_dir)
    if not sources:
        sources = backend.source_files()
        logger.info("Tracing all %s translation units in %s", len(sources), build_dir)

    results: List[Tuple[str, bool]] = []
    with IncludeTraceSession(graph, backend, backend, backend) as session:
        for source in sources:
            result = session.trace_file(source)
            if not result.success:
                kind = result.error_kind.value if result.error_kind else "error"
                print_warning(f"{source}: {kind}: {result.reason}")
            results.append((source, result.success))
    return results


def print_include_trees(graph: IncludeGraph, roots: List[str], max_depth: int) -> None:
    """Print the include tree of every root that made it into the graph."""
    for root in roots:
        item = graph.get_item(root)
        if item is None:
            continue
        lines = format_include_tree(item, max_depth=max_depth)
        print(f"\n{Colors.BRIGHT}{lines[0]}{Colors.RESET} ({len(item.includes)} direct includes)")
        for line in lines[1:]:
            if line.endswith(REPEATED_ITEM_MARKER):
                print(f"{Colors.DIM}{line}{Colors.RESET}")
            else:
                print(f"{Colors.CYAN}{line}{Colors.RESET}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 if every trace succeeded)
    """
    parser = argparse.ArgumentParser(
        description="Reconstruct include graphs from compiler show-includes output.",
        epilog=f"Supported export formats: {', '.join(SUPPORTED_GRAPH_FORMATS)}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("build_directory", metavar="BUILD_DIR", nargs="?", help="Build directory containing compile_commands.json")
    parser.add_argument("--source", action="append", default=[], metavar="FILE", help="Source file to trace (default: all entries)")
    parser.add_argument(
        "--trace-file", action="append", default=[], metavar="ROOT=FILE", help="Parse saved compiler output FILE for translation unit ROOT (repeatable)"
    )
    parser.add_argument("-I", "--include-dir", action="append", default=[], metavar="DIR", help="Include search directory for --trace-file paths")
    parser.add_argument("--export", metavar="FILE", help="Export the merged graph (extension selects the format)")
    parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_TREE_DEPTH, help="Maximum depth of printed include trees (0 = unlimited)")
    parser.add_argument("--no-tree", action="store_true", help="Do not print include trees")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.no_color:
        Colors.disable()

    if not args.build_directory and not args.trace_file:
        raise ArgumentError("Either BUILD_DIR or --trace-file is required")
    if args.source and not args.build_directory:
        raise ArgumentError("--source requires BUILD_DIR")
    if args.max_depth < 0:
        raise ArgumentError("--max-depth must be 0 or greater")

    graph = IncludeGraph()
    results = trace_saved_outputs(graph, args.trace_file, args.include_dir)
    if args.build_directory:
        results.extend(trace_build_directory(graph, args.build_directory, args.source))

    if not args.no_tree:
        print_include_trees(graph, [root for root, success in results if success], args.max_depth)

    failed = [root for root, success in results if not success]
    print(f"\n{Colors.BRIGHT}Include graph:{Colors.RESET} {len(graph)} files, {graph.edge_count()} includes from {len(results)} translation unit(s)")

    if args.export and not export_include_graph(graph, args.export):
        return EXIT_RUNTIME_ERROR

    if failed:
        print_error(f"{len(failed)} of {len(results)} trace(s) failed: {', '.join(failed)}")
        return EXIT_RUNTIME_ERROR

    print_success("All traces merged")
    return EXIT_SUCCESS


if __name__ == "__main__":
    from lib.constants import EXIT_KEYBOARD_INTERRUPT, BuildCheckError
    from lib.package_verification import require_package

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    require_package("networkx", "include graph construction")

    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(EXIT_KEYBOARD_INTERRUPT)
    except BuildCheckError as e:
        logger.error(str(e))
        sys.exit(e.exit_code)
    except Exception as e:
        logger.critical("Unexpected error: %s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
        print_error(f"Fatal error: {e}")
        sys.exit(EXIT_RUNTIME_ERROR)
