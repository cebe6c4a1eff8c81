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
"""Trace collaborators backed by a build directory's compile_commands.json.

CompileDatabaseBackend answers the three questions an IncludeTraceSession asks:
which include directories a translation unit uses, whether include tracing is enabled
for it, and what the compiler prints when it is compiled with tracing on. The traced
compilation reuses the file's own compile command with output-producing flags removed
and show-includes flags appended for the detected driver family.
"""

import os
import json
import shlex
import shutil
import logging
import subprocess
from typing import Any, Dict, List, Optional

from lib.constants import (
    CLANG_SHOW_INCLUDES_FLAGS,
    COMPILE_COMMANDS_JSON,
    INCLUDE_DIR_FLAGS,
    MSVC_SHOW_INCLUDES_FLAGS,
    MSVC_STYLE_COMPILERS,
    TRACE_COMPILE_TIMEOUT,
    BuildDirectoryError,
    TracePreconditionError,
)
from lib.include_graph import is_absolute_path, normalize_path

logger = logging.getLogger(__name__)

VALID_SOURCE_EXTENSIONS = (".cpp", ".c", ".cc", ".cxx", ".c++")

# Build wrappers dropped in front of the real compiler
BUILD_WRAPPERS = ("ccache", "distcc", "icecc", "sccache")

# Flags removed together with their separate argument
OUTPUT_FLAGS_WITH_ARGUMENT = ("-o", "-MF", "-MT", "-MQ", "-MJ")

# Flags removed on their own (object or dependency file generation)
OUTPUT_FLAGS = ("-c", "-M", "-MM", "-MD", "-MMD", "-MG", "-MP")

# MSVC output flags carry their argument inline (/FoC:\out.obj)
MSVC_OUTPUT_PREFIXES = ("/Fo", "/Fd", "/Fe", "/Fp")


def is_valid_source_file(filepath: str) -> bool:
    """Check if a file is a C/C++ source file that can be compiled on its own."""
    return filepath.lower().endswith(VALID_SOURCE_EXTENSIONS)


def is_msvc_style_compiler(executable: str) -> bool:
    """Check if a compiler executable takes MSVC style (/flag) arguments.

    Args:
        executable: Compiler path or name from a compile command

    Returns:
        True for cl and clang-cl
    """
    return os.path.basename(executable.replace("\\", "/")).lower() in MSVC_STYLE_COMPILERS


def load_compile_commands(compile_db_path: str) -> List[Dict[str, Any]]:
    """Load a compilation database.

    Args:
        compile_db_path: Path to compile_commands.json

    Returns:
        List of entries

    Raises:
        BuildDirectoryError: If the file is missing or not a JSON list
    """
    try:
        with open(compile_db_path, "r", encoding="utf-8") as f:
            compile_db = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        raise BuildDirectoryError(f"Failed to read {compile_db_path}: {e}") from e

    if not isinstance(compile_db, list):
        raise BuildDirectoryError(f"{compile_db_path} does not contain a list of compile commands")
    return compile_db


def get_entry_arguments(entry: Dict[str, Any]) -> List[str]:
    """Return the argument vector of a compile_commands.json entry.

    Entries carry either an 'arguments' list or a 'command' string.
    """
    arguments = entry.get("arguments")
    if arguments:
        return [str(arg) for arg in arguments]

    command = entry.get("command", "")
    try:
        return shlex.split(command, posix=not is_msvc_style_compiler(command.split(" ", 1)[0]))
    except ValueError as e:
        raise TracePreconditionError(f"Failed to parse compile command: {e}") from e


def extract_include_directories(arguments: List[str], working_directory: str) -> List[str]:
    """Extract include search directories in command-line order.

    Handles '-I dir' as well as '-Idir' forms of -I, -isystem, -iquote and /I.
    Relative directories are resolved against the entry's working directory.

    Args:
        arguments: Compiler argument vector
        working_directory: 'directory' field of the compile command

    Returns:
        Ordered list of absolute directories without duplicates
    """
    directories: List[str] = []
    seen = set()
    # /I is only a flag for MSVC style drivers; elsewhere it may start an absolute path
    flags = INCLUDE_DIR_FLAGS if arguments and is_msvc_style_compiler(arguments[0]) else tuple(f for f in INCLUDE_DIR_FLAGS if f != "/I")

    i = 0
    while i < len(arguments):
        part = arguments[i]
        directory: Optional[str] = None
        if part in flags and i + 1 < len(arguments):
            directory = arguments[i + 1]
            i += 1
        else:
            for prefix in flags:
                if part.startswith(prefix) and len(part) > len(prefix):
                    directory = part[len(prefix) :]
                    break
        i += 1

        if not directory:
            continue
        if not is_absolute_path(directory):
            directory = os.path.normpath(os.path.join(working_directory, directory))
        key = normalize_path(directory)
        if key not in seen:
            seen.add(key)
            directories.append(directory)

    return directories


def build_trace_command(arguments: List[str], show_includes: bool) -> List[str]:
    """Turn a compile command into a trace-only command.

    Build wrappers and output/dependency file flags are removed; when show_includes is
    set, the driver family's show-includes flags are appended.

    Args:
        arguments: Original compiler argument vector
        show_includes: Whether include tracing is enabled

    Returns:
        New argument vector

    Raises:
        TracePreconditionError: If no compiler remains after removing wrappers
    """
    parts = list(arguments)
    while parts and os.path.basename(parts[0]).lower() in BUILD_WRAPPERS:
        logger.debug("Removing build wrapper: %s", parts[0])
        parts.pop(0)
    if not parts:
        raise TracePreconditionError("Compile command has no compiler")

    command = [parts[0]]
    msvc_style = is_msvc_style_compiler(parts[0])
    skip_next = False
    for part in parts[1:]:
        if skip_next:
            skip_next = False
            continue
        if part in OUTPUT_FLAGS_WITH_ARGUMENT:
            skip_next = True
            continue
        if part in OUTPUT_FLAGS or part.startswith(("-MF", "-MT", "-MQ", "-MJ")):
            continue
        if msvc_style and (part == "/c" or part.startswith(MSVC_OUTPUT_PREFIXES)):
            continue
        command.append(part)

    if show_includes:
        command.extend(MSVC_SHOW_INCLUDES_FLAGS if msvc_style else CLANG_SHOW_INCLUDES_FLAGS)
    return command


class CompileDatabaseBackend:
    """TraceRunner, IncludeDirectoryProvider and TraceFlagController for one build directory."""

    def __init__(self, build_dir: str, timeout: int = TRACE_COMPILE_TIMEOUT) -> None:
        if not os.path.isdir(build_dir):
            raise BuildDirectoryError(f"Build directory does not exist: {build_dir}")

        self.build_dir = os.path.abspath(build_dir)
        self.compile_db_path = os.path.join(self.build_dir, COMPILE_COMMANDS_JSON)
        if not os.path.isfile(self.compile_db_path):
            raise BuildDirectoryError(f"{COMPILE_COMMANDS_JSON} not found in {self.build_dir}")

        self.timeout = timeout
        self._entries: Dict[str, Dict[str, Any]] = {}
        for entry in load_compile_commands(self.compile_db_path):
            if not isinstance(entry, dict) or "file" not in entry:
                logger.warning("Skipping invalid entry in %s: %s", COMPILE_COMMANDS_JSON, entry)
                continue
            directory = entry.get("directory", self.build_dir)
            self._entries[normalize_path(os.path.join(directory, entry["file"]))] = entry
        self._show_includes: Dict[str, bool] = {}

        logger.debug("Loaded %s compile commands from %s", len(self._entries), self.compile_db_path)

    def source_files(self) -> List[str]:
        """Absolute paths of all translation units in the database."""
        return [os.path.normpath(os.path.join(entry.get("directory", self.build_dir), entry["file"])) for entry in self._entries.values()]

    def get_entry(self, path: str) -> Dict[str, Any]:
        """Return the compile command entry of path.

        Raises:
            TracePreconditionError: If the file is not a source file or has no entry
        """
        if not is_valid_source_file(path):
            raise TracePreconditionError(f"'{path}' is not a compilable source file")
        entry = self._entries.get(normalize_path(path))
        if entry is None:
            raise TracePreconditionError(f"'{path}' is not in {self.compile_db_path}")
        return entry

    def get_include_directories(self, path: str) -> List[str]:
        entry = self.get_entry(path)
        return extract_include_directories(get_entry_arguments(entry), entry.get("directory", self.build_dir))

    def get_show_includes(self, path: str) -> bool:
        self.get_entry(path)
        return self._show_includes.get(normalize_path(path), False)

    def set_show_includes(self, path: str, enabled: bool) -> None:
        self.get_entry(path)
        self._show_includes[normalize_path(path)] = enabled

    def run_trace(self, path: str) -> str:
        """Compile path with its database command and return stdout and stderr.

        A failing compilation still returns its output since the include trace is
        printed before errors are reported.

        Raises:
            TracePreconditionError: If the compiler is missing or the compilation times out
        """
        entry = self.get_entry(path)
        command = build_trace_command(get_entry_arguments(entry), self.get_show_includes(path))
        if shutil.which(command[0]) is None:
            raise TracePreconditionError(f"Compiler '{command[0]}' not found in PATH")

        logger.info("Compiling %s with show includes...", path)
        logger.debug("Command: %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                cwd=entry.get("directory", self.build_dir),
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TracePreconditionError(f"Compilation of '{path}' timed out after {self.timeout} seconds") from e

        if result.returncode != 0:
            logger.warning("Compilation of %s failed with code %s", path, result.returncode)
            if result.stderr:
                logger.debug("Stderr: %s", result.stderr[:500])
        stdout = result.stdout or ""
        if stdout and not stdout.endswith(("\n", "\r")):
            stdout += "\n"
        return stdout + (result.stderr or "")
