"""Run claudepod from the command line."""
from __future__ import annotations

import argparse
from pathlib import Path

from .env import (
    ClaudepodError,
    CommandError,
    Layout,
    Orchestrator,
    Profile,
    ensure_default,
    list_profiles,
    load_profile,
    save_profile,
)
from .env.messages import FAIL, OK, set_verbose
from .env.profile import DEFAULT_PROFILE, RUNTIMES
from .env.version import __version__


class Parser:
    """Command-line parser for claudepod."""

    def __init__(self) -> None:
        self.root = argparse.ArgumentParser(
            prog="claudepod",
            description="Manage containerized development sandboxes keyed by project directory.",
        )
        self.commands = self.root.add_subparsers(
            dest="command",
            title="commands",
            description=(
                "Build images from profiles, create one persistent container per "
                "project directory, and run named commands inside it from anywhere "
                "in the project tree."
            ),
            metavar="(command)",
        )

    def version(self) -> None:
        """Add the 'version' query to the parser."""
        self.root.add_argument("-v", "--version", action="version", version=__version__)

    def verbose(self) -> None:
        """Add the global '--verbose' flag to the parser."""
        self.root.add_argument(
            "--verbose",
            action="store_true",
            help="Print every container runtime command before it is run.",
        )

    def profile(self) -> None:
        """Add the 'profile' command group to the parser."""
        command = self.commands.add_parser(
            "profile",
            help="List, show, hash, or create profiles.",
        )
        actions = command.add_subparsers(dest="profile_command", metavar="(action)")
        actions.add_parser("list", help="List available profiles.")
        show = actions.add_parser("show", help="Print a profile as TOML.")
        show.add_argument("name", help="The profile to show.")
        digest = actions.add_parser(
            "hash",
            help="Print the configuration hash used to detect profile changes.",
        )
        digest.add_argument("name", help="The profile to hash.")
        init = actions.add_parser(
            "init",
            help="Write the built-in default profile under a new name.",
        )
        init.add_argument(
            "name",
            nargs="?",
            default=DEFAULT_PROFILE,
            help=f"The profile name to create.  Defaults to '{DEFAULT_PROFILE}'.",
        )
        init.add_argument(
            "-f", "--force",
            action="store_true",
            help="Overwrite the profile if it already exists.",
        )

    def create(self) -> None:
        """Add the 'create' command to the parser."""
        command = self.commands.add_parser(
            "create",
            help=(
                "Create a container for the current directory from a profile, "
                "building its image first if no image exists for the profile's "
                "current contents."
            ),
        )
        command.add_argument(
            "profile",
            nargs="?",
            default=DEFAULT_PROFILE,
            help=f"The profile to use.  Defaults to '{DEFAULT_PROFILE}'.",
        )
        command.add_argument(
            "--rebuild",
            action="store_true",
            help="Rebuild the image even if it already exists.",
        )

    def build(self) -> None:
        """Add the 'build' command to the parser."""
        command = self.commands.add_parser(
            "build",
            help="Render and build the image for a profile without creating a container.",
        )
        command.add_argument(
            "profile",
            nargs="?",
            default=DEFAULT_PROFILE,
            help=f"The profile to build.  Defaults to '{DEFAULT_PROFILE}'.",
        )
        command.add_argument(
            "-f", "--force",
            action="store_true",
            help="Rebuild even if an image for this profile already exists.",
        )

    def run(self) -> None:
        """Add the 'run' command to the parser."""
        command = self.commands.add_parser(
            "run",
            help=(
                "Run a command from the profile's command table inside the current "
                "project's container, creating and starting it as needed."
            ),
        )
        command.add_argument(
            "--profile",
            default=None,
            help=(
                "The profile to create the project with, if the current directory is "
                "not yet tracked."
            ),
        )
        command.add_argument(
            "name",
            nargs="?",
            default=None,
            help="The command to run.  Defaults to the profile's default command.",
        )
        command.add_argument(
            "args",
            nargs=argparse.REMAINDER,
            help="Extra arguments passed to the command as-is.",
        )

    def status(self) -> None:
        """Add the 'status' command to the parser."""
        self.commands.add_parser(
            "status",
            help=(
                "Show the current project's container state and whether its profile "
                "has changed since the container was created."
            ),
        )

    def list(self) -> None:
        """Add the 'list' command to the parser."""
        self.commands.add_parser("list", help="List all tracked projects.")

    def reset(self) -> None:
        """Add the 'reset' command to the parser."""
        command = self.commands.add_parser(
            "reset",
            help="Forcibly remove the current project's container and stop tracking it.",
        )
        command.add_argument(
            "-y", "--yes",
            action="store_true",
            help="Do not ask for confirmation.",
        )

    def export(self) -> None:
        """Add the 'export' command to the parser."""
        command = self.commands.add_parser(
            "export",
            help="Export the current project's container filesystem to a tar archive.",
        )
        command.add_argument("archive", type=Path, help="The archive to write.")

    def import_(self) -> None:
        """Add the 'import' command to the parser."""
        command = self.commands.add_parser(
            "import",
            help="Import a tar archive as a new image.",
        )
        command.add_argument("archive", type=Path, help="The archive to read.")
        command.add_argument("tag", help="The tag for the new image.")
        command.add_argument(
            "--runtime",
            choices=RUNTIMES,
            default=None,
            help="The container runtime to import into.  Defaults to the default profile's.",
        )

    def __call__(self, argv: list[str] | None = None) -> argparse.Namespace:
        """Run the command-line parser.

        Parameters
        ----------
        argv : list[str] | None, optional
            The arguments to parse.  Defaults to `sys.argv[1:]`.

        Returns
        -------
        argparse.Namespace
            The parsed command-line arguments.
        """
        # queries
        self.version()
        self.verbose()

        # commands
        self.profile()
        self.create()
        self.build()
        self.run()
        self.status()
        self.list()
        self.reset()
        self.export()
        self.import_()

        return self.root.parse_args(argv)


def _profile(args: argparse.Namespace, layout: Layout) -> None:
    if args.profile_command == "list":
        ensure_default(layout)
        for name in list_profiles(layout):
            print(name)
    elif args.profile_command == "show":
        print(load_profile(args.name, layout).dumps(name=args.name), end="")
    elif args.profile_command == "hash":
        print(load_profile(args.name, layout).digest())
    elif args.profile_command == "init":
        path = save_profile(args.name, Profile(), layout, force=args.force)
        OK(f"wrote profile '{args.name}' to {path}")
    else:
        raise ClaudepodError("missing profile action (list, show, hash, init)")


def _dispatch(args: argparse.Namespace, parser: Parser) -> None:
    layout = Layout.from_env()
    if args.command == "profile":
        _profile(args, layout)
        return
    if args.command is None:
        parser.root.print_help()
        return

    ensure_default(layout)
    orchestrator = Orchestrator(layout)
    cwd = Path.cwd()

    if args.command == "create":
        orchestrator.create(cwd, args.profile, rebuild=args.rebuild)

    elif args.command == "build":
        tag, image_id = orchestrator.build(args.profile, force=args.force)
        print(f"{tag} {image_id or ''}".rstrip())

    elif args.command == "run":
        orchestrator.run(cwd, args.name, args.args, profile_name=args.profile)

    elif args.command == "status":
        status = orchestrator.status(cwd)
        record = status.record
        print(f"project:   {status.root}")
        print(f"profile:   {record.profile_name}")
        print(f"container: {record.container_name} ({status.state.value})")
        print(f"image:     {record.image_tag} {record.image_id or '(no image id)'}")
        print(f"created:   {record.created_at.isoformat()}")
        last_used = record.last_used.isoformat() if record.last_used else "never"
        print(f"last used: {last_used}")
        if status.drift is not None:
            print(f"config:    {status.drift}")
        else:
            print(f"config:    unknown ({status.problem})")

    elif args.command == "list":
        projects = orchestrator.projects()
        if not projects:
            print("no tracked projects")
        for root, record in projects:
            print(f"{root}\t{record.profile_name}\t{record.container_name}")

    elif args.command == "reset":
        orchestrator.reset(cwd, assume_yes=args.yes)

    elif args.command == "export":
        orchestrator.export(cwd, args.archive)

    elif args.command == "import":
        runtime = args.runtime or orchestrator.profile(DEFAULT_PROFILE).docker.container_runtime
        image_id = orchestrator.import_image(args.archive, args.tag, runtime=runtime)
        if image_id:
            print(image_id)

    else:
        parser.root.print_help()


def main(argv: list[str] | None = None) -> None:
    """Run claudepod as a command-line utility."""
    parser = Parser()
    args = parser(argv)
    if args.verbose:
        set_verbose(True)
    try:
        _dispatch(args, parser)
    except CommandError as err:
        FAIL(str(err), code=err.returncode)
    except ClaudepodError as err:
        FAIL(str(err))
    except KeyboardInterrupt:
        FAIL("interrupted", code=130)


if __name__ == "__main__":
    main()
