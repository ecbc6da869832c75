"""
Console script entry point for the hhinject package.

This module provides a ``main`` function that is registered in
``setup.py`` under ``console_scripts``. When installed via pip, a
``hhinject`` command will be available on the user's PATH which
delegates execution to :func:`hhinject.core.program_main` and exits with
the status it returns.
"""
from __future__ import annotations

import sys
from typing import List

from hhinject.core import program_main


def main(argv: List[str] | None = None) -> None:
    """Entrypoint for the ``hhinject`` console script.

    Parameters
    ----------
    argv: list[str] | None
        Optional list of command-line arguments. When ``None`` (the
        default), ``sys.argv[1:]`` is used.
    """
    sys.exit(program_main(argv))


if __name__ == "__main__":  # pragma: no cover
    main()
