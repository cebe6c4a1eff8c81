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
"""Run one include trace at a time and merge it into a shared graph.

A compilation with include tracing enabled is a singleton resource: the session owns
it and rejects a second request while one is outstanding instead of queueing it. The
compiler, the include directory lookup and the show-includes flag are external
collaborators passed in by the caller (see lib.compile_db_backend for the
compile_commands.json based implementation).
"""

import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from lib.constants import SHOW_INCLUDES_MARKER, TraceBusyError, TracePreconditionError
from lib.include_graph import IncludeGraph
from lib.show_includes_parser import TraceParseStats, parse_show_includes

logger = logging.getLogger(__name__)


class TraceRunner(Protocol):
    def run_trace(self, path: str) -> str:
        """Compile path with include tracing enabled and return the captured output."""
        ...


class IncludeDirectoryProvider(Protocol):
    def get_include_directories(self, path: str) -> List[str]:
        """Return the include search directories for path in priority order."""
        ...


class TraceFlagController(Protocol):
    def get_show_includes(self, path: str) -> bool:
        ...

    def set_show_includes(self, path: str, enabled: bool) -> None:
        ...


class TraceErrorKind(enum.Enum):
    """Why a trace did not complete."""

    RESOURCE_BUSY = "resource-busy"
    PRECONDITION_FAILURE = "precondition-failure"
    MALFORMED_TRACE = "malformed-trace"


@dataclass
class TraceResult:
    """Single completion notification of a trace request.

    Attributes:
        root_path: Translation unit that was requested
        success: True if the whole transcript was merged
        graph: The graph that was (possibly partially) extended
        error_kind: Failure category, None on success
        reason: Human readable failure reason, None on success
        stats: Parse statistics when parsing ran to completion
    """

    root_path: str
    success: bool
    graph: IncludeGraph
    error_kind: Optional[TraceErrorKind] = None
    reason: Optional[str] = None
    stats: Optional[TraceParseStats] = None


class IncludeTraceSession:
    """Caller-owned handle allowing at most one outstanding trace against a graph."""

    def __init__(
        self,
        graph: IncludeGraph,
        runner: TraceRunner,
        directory_provider: IncludeDirectoryProvider,
        flag_controller: TraceFlagController,
        marker: str = SHOW_INCLUDES_MARKER,
    ) -> None:
        self.graph = graph
        self._runner = runner
        self._directory_provider = directory_provider
        self._flag_controller = flag_controller
        self._marker = marker
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def trace_file(self, path: str) -> TraceResult:
        """Trace path and merge its includes, blocking until done.

        Args:
            path: Translation unit to compile

        Returns:
            TraceResult; RESOURCE_BUSY if another trace is outstanding
        """
        try:
            self._acquire(path)
        except TraceBusyError as e:
            return self._busy_result(path, e)
        try:
            return self._run(path)
        finally:
            self._lock.release()

    def submit_trace(self, path: str) -> "Future[TraceResult]":
        """Trace path on a background worker.

        The returned future resolves exactly once. A request made while another trace is
        outstanding resolves immediately with RESOURCE_BUSY.
        """
        try:
            self._acquire(path)
        except TraceBusyError as e:
            future: Future[TraceResult] = Future()
            future.set_result(self._busy_result(path, e))
            return future

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="include-trace")
        try:
            return self._executor.submit(self._run_and_release, path)
        except RuntimeError:
            self._lock.release()
            raise

    def close(self) -> None:
        """Wait for an outstanding background trace and stop the worker."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "IncludeTraceSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _acquire(self, path: str) -> None:
        if not self._lock.acquire(blocking=False):
            raise TraceBusyError(f"Can't trace '{path}' while another file is being compiled")

    def _busy_result(self, path: str, error: TraceBusyError) -> TraceResult:
        logger.error("%s", error)
        return TraceResult(path, False, self.graph, TraceErrorKind.RESOURCE_BUSY, str(error))

    def _run_and_release(self, path: str) -> TraceResult:
        try:
            return self._run(path)
        finally:
            self._lock.release()

    def _run(self, path: str) -> TraceResult:
        try:
            show_includes_before = self._flag_controller.get_show_includes(path)
        except Exception as e:
            logger.error("Can't compile '%s' with show includes: %s", path, e)
            return TraceResult(path, False, self.graph, TraceErrorKind.PRECONDITION_FAILURE, str(e))

        try:
            try:
                self._flag_controller.set_show_includes(path, True)
                output = self._runner.run_trace(path)
                directories = self._directory_provider.get_include_directories(path)
            except Exception as e:
                logger.error("Can't extract include graph of '%s': %s", path, e)
                return TraceResult(path, False, self.graph, TraceErrorKind.PRECONDITION_FAILURE, str(e))

            try:
                stats = parse_show_includes(self.graph, path, directories, output, self._marker)
            except Exception as e:
                logger.error("Failed to parse show-includes output of '%s': %s", path, e)
                return TraceResult(path, False, self.graph, TraceErrorKind.MALFORMED_TRACE, str(e))

            logger.info("Traced %s: %s includes merged (max depth %s)", path, stats.edges_added, stats.max_depth)
            return TraceResult(path, True, self.graph, stats=stats)
        finally:
            self._restore_flag(path, show_includes_before)

    def _restore_flag(self, path: str, enabled: bool) -> None:
        try:
            self._flag_controller.set_show_includes(path, enabled)
        except Exception as e:
            logger.warning("Failed to restore show-includes setting for '%s': %s", path, e)
