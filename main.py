# spritr command line
from __future__ import annotations
import argparse
import logging
import sys
from typing import Optional, Sequence

from app_config import CLI_EXAMPLES, CLI_NAME, PROJECT_EXT, TAGLINE, banner, version_string
from spritr.core.assets import AssetKind
from spritr.core.config import get_settings
from spritr.core.errors import ProjectError
from spritr.core.logging import setup_logging
from spritr.core.project import ProjectModel


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=CLI_NAME,
        description=f"Inspect and re-save Spritr project files. {TAGLINE}",
        epilog="examples:\n" + CLI_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {version_string()}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--no-prefs", action="store_true",
                        help="do not read or write the prefs.json sidecar")
    sub = parser.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="print a summary of a project")
    info.add_argument("project", help=f"project file ({PROJECT_EXT})")

    resave = sub.add_parser("resave", help="load a project and write it back out")
    resave.add_argument("project", help=f"project file ({PROJECT_EXT})")
    resave.add_argument("output", nargs="?", help="defaults to overwriting the input")
    return parser


def _print_info(model: ProjectModel) -> None:
    print(f"{model.file_name}")
    for folder in sorted(model.folders(), key=lambda f: f.name):
        print(f"  folder    {folder.name}")
    for part in sorted(model.parts(), key=lambda p: p.name):
        modes = ", ".join(
            f"{name} {m.width}x{m.height} {m.num_frames}f@{m.frames_per_second}fps"
            for name, m in part.modes.items()
        )
        print(f"  part      {part.name}: {modes or '(no modes)'}")
    for comp in sorted(model.composites(), key=lambda c: c.name):
        print(f"  composite {comp.name}: {len(comp.children)} children")
    print(
        f"{model.count(AssetKind.FOLDER)} folders, {model.count(AssetKind.PART)} parts, "
        f"{model.count(AssetKind.COMPOSITE)} composites"
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logger = setup_logging(level=logging.DEBUG if args.verbose else logging.WARNING, log_file=None)
    logger.info(banner())

    model = ProjectModel(settings=None if args.no_prefs else get_settings())
    try:
        model.load(args.project)
        if args.command == "info":
            _print_info(model)
        elif args.command == "resave":
            model.save(args.output or args.project)
            print(f"Saved {model.file_name}")
    except ProjectError as ex:
        print(f"{CLI_NAME}: {ex}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
