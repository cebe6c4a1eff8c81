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
"""Shared constants for buildCheckShowIncludes.

Centralizes the show-includes marker text, build-system file names, timeouts and
export formats, together with the exception hierarchy used across lib modules.
"""

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS = 0
EXIT_INVALID_ARGS = 1
EXIT_RUNTIME_ERROR = 2
EXIT_KEYBOARD_INTERRUPT = 130

# =============================================================================
# Include Trace Constants
# =============================================================================

# Prefix emitted by cl.exe / clang-cl /showIncludes and clang -Xclang --show-includes
SHOW_INCLUDES_MARKER = "Note: including file: "

# Flags that turn on include tracing for each compiler driver family
MSVC_SHOW_INCLUDES_FLAGS = ["/showIncludes", "/Zs"]  # /Zs = syntax check only
CLANG_SHOW_INCLUDES_FLAGS = ["-Xclang", "--show-includes", "-fsyntax-only"]

# Compiler executables that take MSVC style arguments
MSVC_STYLE_COMPILERS = ("cl", "cl.exe", "clang-cl", "clang-cl.exe")

# Include search directory flags (order matters for resolution priority)
INCLUDE_DIR_FLAGS = ("-I", "-isystem", "-iquote", "/I")

# =============================================================================
# Build System Constants
# =============================================================================

COMPILE_COMMANDS_JSON = "compile_commands.json"  # Standard compilation database filename

# =============================================================================
# Performance Constants
# =============================================================================

TRACE_COMPILE_TIMEOUT = 300  # Timeout (seconds) for a single traced compilation

# =============================================================================
# Display Limits
# =============================================================================

DEFAULT_MAX_TREE_DEPTH = 0  # 0 = unlimited
REPEATED_ITEM_MARKER = "(see above)"

# =============================================================================
# Graph Export Constants
# =============================================================================

SUPPORTED_GRAPH_FORMATS = [".graphml", ".dot", ".gexf", ".json"]
DEFAULT_GRAPH_FORMAT = "graphml"

# =============================================================================
# Exception Classes
# =============================================================================


class BuildCheckError(Exception):
    """Base exception for all buildCheck errors.

    All buildCheck exceptions carry an exit_code attribute that indicates
    what exit code the program should use when this error is caught at the
    main entry point.
    """

    def __init__(self, message: str, exit_code: int = EXIT_RUNTIME_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


# Validation errors (EXIT_INVALID_ARGS)
class ValidationError(BuildCheckError):
    """Raised when input validation fails (arguments, paths, etc)."""

    def __init__(self, message: str):
        super().__init__(message, EXIT_INVALID_ARGS)


class BuildDirectoryError(ValidationError):
    """Raised when build directory is invalid or inaccessible."""


class ArgumentError(ValidationError):
    """Raised when command-line arguments are invalid."""


# Include trace errors (EXIT_RUNTIME_ERROR)
class IncludeTraceError(BuildCheckError):
    """Raised when collecting or parsing an include trace fails."""


class TraceBusyError(IncludeTraceError):
    """Raised when a trace is requested while another one is still outstanding."""


class TracePreconditionError(IncludeTraceError):
    """Raised when a file cannot be traced (not compilable, flag cannot be set, ...)."""


class TraceParseError(IncludeTraceError):
    """Raised when trace text drives the depth stack into an invalid state."""
