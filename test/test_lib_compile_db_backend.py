#!/usr/bin/env python3
"""Tests for lib/compile_db_backend.py"""

import os
import sys
import json
import stat
import subprocess
from pathlib import Path
from typing import Any, Dict
from unittest.mock import MagicMock, patch

import pytest

from lib.compile_db_backend import (
    CompileDatabaseBackend,
    build_trace_command,
    extract_include_directories,
    get_entry_arguments,
    is_msvc_style_compiler,
    is_valid_source_file,
    load_compile_commands,
)
from lib.constants import BuildDirectoryError, TracePreconditionError
from lib.include_graph import IncludeGraph, normalize_path
from lib.trace_session import IncludeTraceSession


class TestHelpers:
    """Tests for module level helpers."""

    @pytest.mark.parametrize("path", ["a.cpp", "a.c", "a.cc", "a.cxx", "A.CPP"])
    def test_valid_source_files(self, path: str) -> None:
        """Test C/C++ source extensions are accepted."""
        assert is_valid_source_file(path)

    @pytest.mark.parametrize("path", ["a.h", "a.hpp", "CMakeLists.txt"])
    def test_invalid_source_files(self, path: str) -> None:
        """Test headers and other files are rejected."""
        assert not is_valid_source_file(path)

    def test_msvc_style_compiler(self) -> None:
        """Test cl and clang-cl are detected by basename."""
        assert is_msvc_style_compiler("C:\\VS\\bin\\cl.exe")
        assert is_msvc_style_compiler("clang-cl")
        assert not is_msvc_style_compiler("/usr/bin/clang++")
        assert not is_msvc_style_compiler("/opt/include/cl/g++")

    def test_entry_arguments_from_list(self) -> None:
        """Test 'arguments' entries are used verbatim."""
        assert get_entry_arguments({"arguments": ["g++", "-c", "a.cpp"]}) == ["g++", "-c", "a.cpp"]

    def test_entry_arguments_from_command(self) -> None:
        """Test 'command' strings are split shell style."""
        assert get_entry_arguments({"command": 'g++ -DNAME="a b" -c a.cpp'}) == ["g++", "-DNAME=a b", "-c", "a.cpp"]

    def test_entry_arguments_msvc_keeps_backslashes(self) -> None:
        """Test MSVC commands are split without treating backslashes as escapes."""
        args = get_entry_arguments({"command": "cl.exe /IC:\\inc /c C:\\src\\a.cpp"})
        assert args == ["cl.exe", "/IC:\\inc", "/c", "C:\\src\\a.cpp"]

    def test_entry_arguments_unbalanced_quotes(self) -> None:
        """Test unparsable commands raise TracePreconditionError."""
        with pytest.raises(TracePreconditionError):
            get_entry_arguments({"command": 'g++ "-Iunterminated'})


class TestExtractIncludeDirectories:
    """Tests for extract_include_directories function."""

    def test_order_and_forms(self) -> None:
        """Test separate and joined flag forms are returned in command-line order."""
        args = ["clang++", "-I/a", "-isystem", "/b", "-iquote/c", "-I", "/d", "-c", "x.cpp"]
        assert extract_include_directories(args, "/build") == ["/a", "/b", "/c", "/d"]

    def test_relative_directories_resolved(self) -> None:
        """Test relative directories are resolved against the working directory."""
        assert extract_include_directories(["clang++", "-I../include"], "/project/build") == ["/project/include"]

    def test_duplicates_removed(self) -> None:
        """Test repeated directories keep their first position."""
        assert extract_include_directories(["g++", "-I/a", "-I/b", "-I/a"], "/build") == ["/a", "/b"]

    def test_msvc_include_flag(self) -> None:
        """Test /I is honored for MSVC style drivers."""
        assert extract_include_directories(["cl.exe", "/IC:\\inc", "/I", "C:\\sdk"], "C:\\build") == ["C:\\inc", "C:\\sdk"]

    def test_slash_i_ignored_for_gcc(self) -> None:
        """Test absolute paths starting with /I are not include flags for gcc style drivers."""
        assert extract_include_directories(["g++", "-c", "/Include/a.cpp"], "/build") == []


class TestBuildTraceCommand:
    """Tests for build_trace_command function."""

    def test_clang_flags_appended(self) -> None:
        """Test clang style drivers get -Xclang --show-includes."""
        command = build_trace_command(["clang++", "-Iinc", "-c", "-o", "a.o", "a.cpp"], show_includes=True)
        assert command == ["clang++", "-Iinc", "a.cpp", "-Xclang", "--show-includes", "-fsyntax-only"]

    def test_msvc_flags_appended(self) -> None:
        """Test MSVC style drivers get /showIncludes."""
        command = build_trace_command(["cl.exe", "/Iinc", "/c", "/Foa.obj", "a.cpp"], show_includes=True)
        assert command == ["cl.exe", "/Iinc", "a.cpp", "/showIncludes", "/Zs"]

    def test_no_flags_when_disabled(self) -> None:
        """Test nothing is appended when tracing is off."""
        assert build_trace_command(["clang++", "a.cpp"], show_includes=False) == ["clang++", "a.cpp"]

    def test_wrappers_and_dependency_flags_removed(self) -> None:
        """Test build wrappers and dependency file flags are dropped."""
        command = build_trace_command(["ccache", "g++", "-MD", "-MF", "a.d", "-MTa.o", "-DX", "a.cpp"], show_includes=False)
        assert command == ["g++", "-DX", "a.cpp"]

    def test_only_wrapper_raises(self) -> None:
        """Test a command consisting only of a wrapper is rejected."""
        with pytest.raises(TracePreconditionError):
            build_trace_command(["ccache"], show_includes=True)


class TestLoadCompileCommands:
    """Tests for load_compile_commands function."""

    def test_missing_file(self, temp_dir: str) -> None:
        """Test a missing database raises BuildDirectoryError."""
        with pytest.raises(BuildDirectoryError):
            load_compile_commands(os.path.join(temp_dir, "compile_commands.json"))

    def test_not_a_list(self, temp_dir: str) -> None:
        """Test a database that is not a list is rejected."""
        path = os.path.join(temp_dir, "compile_commands.json")
        with open(path, "w") as f:
            json.dump({"file": "a.cpp"}, f)
        with pytest.raises(BuildDirectoryError):
            load_compile_commands(path)


class TestCompileDatabaseBackend:
    """Tests for CompileDatabaseBackend class."""

    def test_missing_build_directory(self, temp_dir: str) -> None:
        """Test a missing build directory is rejected."""
        with pytest.raises(BuildDirectoryError):
            CompileDatabaseBackend(os.path.join(temp_dir, "nope"))

    def test_missing_compile_commands(self, temp_dir: str) -> None:
        """Test a build directory without compile_commands.json is rejected."""
        with pytest.raises(BuildDirectoryError):
            CompileDatabaseBackend(temp_dir)

    def test_source_files(self, project_tree: Dict[str, str]) -> None:
        """Test all entries are listed with normalized absolute paths."""
        backend = CompileDatabaseBackend(project_tree["build"])
        assert sorted(backend.source_files()) == sorted([project_tree["main"], project_tree["utils"]])

    def test_unknown_file_is_precondition_failure(self, project_tree: Dict[str, str]) -> None:
        """Test files missing from the database cannot be traced."""
        backend = CompileDatabaseBackend(project_tree["build"])
        with pytest.raises(TracePreconditionError):
            backend.get_include_directories(os.path.join(project_tree["root"], "src", "other.cpp"))

    def test_header_is_precondition_failure(self, project_tree: Dict[str, str]) -> None:
        """Test headers cannot be compiled on their own."""
        backend = CompileDatabaseBackend(project_tree["build"])
        with pytest.raises(TracePreconditionError, match="not a compilable"):
            backend.get_show_includes(project_tree["common"])

    def test_include_directories(self, project_tree: Dict[str, str]) -> None:
        """Test include directories come from the file's own command."""
        backend = CompileDatabaseBackend(project_tree["build"])
        assert backend.get_include_directories(project_tree["main"]) == [project_tree["include"], "/opt/sdk/include"]
        assert backend.get_include_directories(project_tree["utils"]) == [project_tree["include"]]

    def test_show_includes_flag(self, project_tree: Dict[str, str]) -> None:
        """Test the per-file flag defaults to off and can be toggled."""
        backend = CompileDatabaseBackend(project_tree["build"])
        assert backend.get_show_includes(project_tree["main"]) is False
        backend.set_show_includes(project_tree["main"], True)
        assert backend.get_show_includes(project_tree["main"]) is True
        assert backend.get_show_includes(project_tree["utils"]) is False

    @patch("lib.compile_db_backend.shutil.which", return_value="/usr/bin/clang++")
    @patch("lib.compile_db_backend.subprocess.run")
    def test_run_trace(self, mock_run: Any, mock_which: Any, project_tree: Dict[str, str]) -> None:
        """Test the traced compile reuses the database command and returns all output."""
        mock_run.return_value = MagicMock(returncode=0, stdout="Note: including file: /x.h\n", stderr="warning\n")
        backend = CompileDatabaseBackend(project_tree["build"])
        backend.set_show_includes(project_tree["main"], True)

        output = backend.run_trace(project_tree["main"])

        assert output == "Note: including file: /x.h\nwarning\n"
        command = mock_run.call_args[0][0]
        assert command[0] == "/usr/bin/clang++"
        assert "--show-includes" in command
        assert "-o" not in command
        assert mock_run.call_args[1]["cwd"] == project_tree["build"]

    @patch("lib.compile_db_backend.shutil.which", return_value="/usr/bin/clang++")
    @patch("lib.compile_db_backend.subprocess.run")
    def test_run_trace_failed_compile_returns_output(self, mock_run: Any, mock_which: Any, project_tree: Dict[str, str]) -> None:
        """Test a compile error still returns the captured trace."""
        mock_run.return_value = MagicMock(returncode=1, stdout="Note: including file: /x.h\n", stderr="error: boom\n")
        backend = CompileDatabaseBackend(project_tree["build"])
        assert "Note: including file:" in backend.run_trace(project_tree["main"])

    @patch("lib.compile_db_backend.shutil.which", return_value="/usr/bin/clang++")
    @patch("lib.compile_db_backend.subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="clang++", timeout=1))
    def test_run_trace_timeout(self, mock_run: Any, mock_which: Any, project_tree: Dict[str, str]) -> None:
        """Test a timeout is a precondition failure."""
        backend = CompileDatabaseBackend(project_tree["build"], timeout=1)
        with pytest.raises(TracePreconditionError, match="timed out"):
            backend.run_trace(project_tree["main"])

    @patch("lib.compile_db_backend.shutil.which", return_value=None)
    def test_run_trace_missing_compiler(self, mock_which: Any, project_tree: Dict[str, str]) -> None:
        """Test a compiler missing from PATH is a precondition failure."""
        backend = CompileDatabaseBackend(project_tree["build"])
        with pytest.raises(TracePreconditionError, match="not found"):
            backend.run_trace(project_tree["main"])

    @patch("lib.compile_db_backend.shutil.which", return_value="/usr/bin/clang++")
    @patch("lib.compile_db_backend.subprocess.run")
    def test_run_trace_output_decoding(self, mock_run: Any, mock_which: Any, project_tree: Dict[str, str]) -> None:
        """Test compiler output is decoded as UTF-8 with undecodable bytes replaced."""
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        CompileDatabaseBackend(project_tree["build"]).run_trace(project_tree["main"])
        assert mock_run.call_args[1]["encoding"] == "utf-8"
        assert mock_run.call_args[1]["errors"] == "replace"

    @patch("lib.compile_db_backend.shutil.which", return_value="/usr/bin/clang++")
    @patch("lib.compile_db_backend.subprocess.run")
    def test_run_trace_stdout_without_trailing_newline(self, mock_run: Any, mock_which: Any, project_tree: Dict[str, str]) -> None:
        """Test the last stdout line and the first stderr line stay separate lines."""
        mock_run.return_value = MagicMock(returncode=0, stdout="Note: including file: /a.h", stderr="Note: including file: /b.h\n")
        output = CompileDatabaseBackend(project_tree["build"]).run_trace(project_tree["main"])
        assert output.splitlines() == ["Note: including file: /a.h", "Note: including file: /b.h"]


@pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell script as the compiler")
class TestRunTraceWithCompilerScript:
    """Tests for run_trace against a real process emitting non-UTF-8 output."""

    def _make_database(self, temp_dir: str) -> Dict[str, str]:
        root = Path(temp_dir)
        (root / "build").mkdir()
        source = root / "main.cpp"
        source.write_text("int main() { return 0; }\n")
        compiler = root / "fakecc"
        # Latin-1 encoded 'é' as an ANSI code page compiler would print it
        compiler.write_text("#!/bin/sh\nprintf 'Note: including file: /sdk/caf\\351.h\\n'\n")
        compiler.chmod(compiler.stat().st_mode | stat.S_IXUSR)
        entries = [{"directory": str(root / "build"), "command": f"{compiler} -c {source}", "file": str(source)}]
        (root / "build" / "compile_commands.json").write_text(json.dumps(entries))
        return {"build": str(root / "build"), "source": str(source)}

    def test_undecodable_bytes_replaced(self, temp_dir: str) -> None:
        """Test non-UTF-8 compiler output is returned with replacement characters."""
        paths = self._make_database(temp_dir)
        output = CompileDatabaseBackend(paths["build"]).run_trace(paths["source"])
        assert output == "Note: including file: /sdk/caf\ufffd.h\n"

    def test_session_returns_result(self, temp_dir: str) -> None:
        """Test a trace session merges the include instead of raising on the output."""
        paths = self._make_database(temp_dir)
        backend = CompileDatabaseBackend(paths["build"])
        session = IncludeTraceSession(IncludeGraph(), backend, backend, backend)

        result = session.trace_file(paths["source"])

        assert result.success is True
        assert session.graph.as_adjacency()[normalize_path(paths["source"])] == ["/sdk/caf\ufffd.h"]
        assert backend.get_show_includes(paths["source"]) is False
