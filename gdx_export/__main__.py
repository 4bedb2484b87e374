"""Entry point for ``python -m gdx_export``.

Launches the PyQt6 GUI when called without arguments.  With arguments the
command-line pipeline runs instead (see ``gdx_export.cli``).
"""

import sys


def main():
    if len(sys.argv) > 1:
        from gdx_export.cli import main as cli_main
        sys.exit(cli_main())
    from gdx_export.gui_qt import main as gui_main
    gui_main()


if __name__ == "__main__":
    main()
