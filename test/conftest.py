#!/usr/bin/env python3
#****************************************************************************************************************************************************
#* BSD 3-Clause License
#*
#* Copyright (c) 2025, Mana Battery
#* All rights reserved.
#*
#* Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
#*
#* 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
#* 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
#*    documentation and/or other materials provided with the distribution.
#* 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
#*    software without specific prior written permission.
#*
#* THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
#* THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
#* CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
#* PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
#* LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
#* EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
#****************************************************************************************************************************************************
"""Pytest configuration and shared fixtures for buildCheckShowIncludes tests.

Fixtures:
- temp_dir: isolated temporary directory (str)
- project_tree: small C++ project on disk with src/ and include/ directories
- make_show_includes_output: builds compiler output from (depth, path) pairs
"""

import sys
import json
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Sequence, Tuple

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from lib.constants import SHOW_INCLUDES_MARKER


def create_show_includes_output(entries: Sequence[Tuple[int, str]], newline: str = "\n", noise: Optional[List[str]] = None) -> str:
    """Create compiler output in /showIncludes format.

    Helper function (not a fixture) used by make_show_includes_output.

    Args:
        entries: (depth, path) pairs in trace order
        newline: Line terminator to join lines with
        noise: Optional build noise lines; one is inserted before every trace line

    Returns:
        Compiler output text
    """
    lines = ["main.cpp"]
    for index, (depth, path) in enumerate(entries):
        if noise:
            lines.append(noise[index % len(noise)])
        lines.append(f"{SHOW_INCLUDES_MARKER}{' ' * depth}{path}")
    lines.append("Build succeeded.")
    return newline.join(lines)


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests.

    Scope: function (default)
    Use for: File I/O operations that need isolation
    """
    tmpdir = tempfile.mkdtemp(prefix="buildcheck_test_")
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def make_show_includes_output() -> Callable[..., str]:
    return create_show_includes_output


@pytest.fixture
def project_tree(temp_dir: str) -> Dict[str, str]:
    """Create a small project with a compilation database.

    Layout:
        src/main.cpp, src/local.h, src/utils.cpp
        include/common.h, include/local.h, include/detail/impl.h
        build/compile_commands.json (main.cpp and utils.cpp)

    Returns:
        Mapping of short names to absolute paths
    """
    root = Path(temp_dir)
    (root / "src").mkdir()
    (root / "include" / "detail").mkdir(parents=True)
    (root / "build").mkdir()

    (root / "src" / "main.cpp").write_text('#include "local.h"\n#include "common.h"\n')
    (root / "src" / "utils.cpp").write_text('#include "common.h"\n')
    (root / "src" / "local.h").write_text("#pragma once\n")
    (root / "include" / "local.h").write_text("#pragma once\n")
    (root / "include" / "common.h").write_text('#pragma once\n#include "detail/impl.h"\n')
    (root / "include" / "detail" / "impl.h").write_text("#pragma once\n")

    build_dir = root / "build"
    compile_commands = [
        {
            "directory": str(build_dir),
            "command": f"ccache /usr/bin/clang++ -I../include -isystem /opt/sdk/include -DNDEBUG -c -o main.cpp.o {root / 'src' / 'main.cpp'}",
            "file": str(root / "src" / "main.cpp"),
        },
        {
            "directory": str(build_dir),
            "arguments": ["/usr/bin/clang++", "-I", str(root / "include"), "-MD", "-MF", "utils.d", "-c", "-o", "utils.cpp.o", "../src/utils.cpp"],
            "file": "../src/utils.cpp",
        },
    ]
    with open(build_dir / "compile_commands.json", "w") as f:
        json.dump(compile_commands, f, indent=2)

    return {
        "root": str(root),
        "build": str(build_dir),
        "main": str(root / "src" / "main.cpp"),
        "utils": str(root / "src" / "utils.cpp"),
        "src_local": str(root / "src" / "local.h"),
        "include": str(root / "include"),
        "include_local": str(root / "include" / "local.h"),
        "common": str(root / "include" / "common.h"),
        "impl": str(root / "include" / "detail" / "impl.h"),
    }
