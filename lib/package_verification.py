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
"""Runtime dependency verification for buildCheckShowIncludes.

Checks that the packages the tool imports are installed in a recent enough version
before any analysis starts, so a missing networkx shows up as a clear message instead
of a traceback halfway through tracing.
"""

import sys
import logging
import argparse
from typing import Dict, Optional, Tuple

try:
    from importlib.metadata import version, PackageNotFoundError
    from packaging.version import parse
except ImportError as e:
    print("Error: 'packaging' library is required for build-check.", file=sys.stderr)
    print("Install with: pip install packaging>=24.0", file=sys.stderr)
    print(f"Technical details: {e}", file=sys.stderr)
    sys.exit(1)

from lib.color_utils import print_error, print_success, print_warning
from lib.constants import EXIT_RUNTIME_ERROR

logger = logging.getLogger(__name__)

# Minimum versions (Ubuntu 24.04 LTS packages)
PACKAGE_REQUIREMENTS: Dict[str, str] = {
    "networkx": "2.8.8",
    "packaging": "24.0",
    "colorama": "0.4.6",  # optional - colored output only
    "pydot": "1.4.2",  # optional - DOT export only
}

OPTIONAL_PACKAGES = ("colorama", "pydot")


def check_package_version(package_name: str, min_version: Optional[str] = None, raise_on_error: bool = True) -> Tuple[bool, bool, Optional[str]]:
    """Check if a package is installed and meets minimum version requirement.

    Args:
        package_name: PyPI package name (e.g., 'networkx')
        min_version: Minimum required version string. If None, uses PACKAGE_REQUIREMENTS.
        raise_on_error: If True, raises ImportError on failure

    Returns:
        Tuple of (is_installed, meets_version, installed_version or None)

    Raises:
        ImportError: If raise_on_error=True and package is missing or too old
        ValueError: If no requirement is known for package_name
    """
    if min_version is None:
        min_version = PACKAGE_REQUIREMENTS.get(package_name)
        if min_version is None:
            raise ValueError(f"No version requirement specified for {package_name}")

    try:
        installed_version = version(package_name)
    except PackageNotFoundError as exc:
        if raise_on_error:
            raise ImportError(f"{package_name} is not installed. Install with: pip install '{package_name}>={min_version}'") from exc
        return False, False, None

    meets_version = parse(installed_version) >= parse(min_version)
    if not meets_version and raise_on_error:
        raise ImportError(
            f"{package_name} {installed_version} is too old. "
            f"Version >={min_version} is required. "
            f"Upgrade with: pip install --upgrade '{package_name}>={min_version}'"
        )
    return True, meets_version, installed_version


def require_package(package_name: str, context: str = "this tool") -> None:
    """Exit with a helpful message if a required package is missing or too old.

    Exits:
        With EXIT_RUNTIME_ERROR (2) if the package is missing or too old
    """
    try:
        check_package_version(package_name)
    except (ImportError, ValueError) as e:
        print_error(f"{package_name} is required for {context}: {e}")
        sys.exit(EXIT_RUNTIME_ERROR)


def check_all_packages() -> bool:
    """Check all known runtime packages and display status.

    Returns:
        True if all required packages are OK, False otherwise
    """
    all_ok = True
    for pkg_name, min_ver in PACKAGE_REQUIREMENTS.items():
        optional = pkg_name in OPTIONAL_PACKAGES
        is_installed, meets_version, installed_ver = check_package_version(pkg_name, min_ver, raise_on_error=False)
        if is_installed and meets_version:
            print_success(f"{pkg_name} {installed_ver}")
        elif optional:
            print_warning(f"{pkg_name} {installed_ver or 'not installed'} (optional, recommended >={min_ver})", prefix=False)
        else:
            print_error(f"{pkg_name} {installed_ver or 'not installed'} (need >={min_ver})", prefix=False)
            all_ok = False

    if not all_ok:
        print("Install missing packages with:")
        print("  pip install networkx>=2.8.8 packaging>=24.0")
    return all_ok


def main() -> int:
    parser = argparse.ArgumentParser(description="Verify buildCheckShowIncludes package dependencies")
    parser.add_argument("--check-all", action="store_true", help="Check all known runtime packages")
    args = parser.parse_args()

    if args.check_all:
        return 0 if check_all_packages() else 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
