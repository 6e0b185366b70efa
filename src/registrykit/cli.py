#!/usr/bin/env python3

import sys
import asyncio
import logging
import argparse
from typing import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from registrykit.config import Config
from registrykit.utils.errors import RegistryError
from registrykit.utils.models import Manifest
from registrykit.utils.oci_api import RegistryClient

try:
    import httpx
except ImportError:
    raise RuntimeError("ERROR: Missing required packages. See the README.")

logging.basicConfig(
    stream=sys.stderr, format="%(levelname)s: %(message)s", level=logging.INFO
)
logging.getLogger("httpx").setLevel(logging.WARNING)

PROG = "registrykit"


class CommandError(Exception):
    pass


@dataclass(frozen=True)
class Command:
    name: str
    usage: str
    short: str
    long: str
    run: Callable[[argparse.Namespace, Config], Awaitable[None]]
    arguments: Callable[[argparse.ArgumentParser], None]

    def parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=f"{PROG} {self.name}",
            usage=f"{PROG} {self.usage}",
            description=self.long.strip(),
        )
        parser.add_argument("-u", "--user", help="registry username")
        parser.add_argument("-p", "--password", help="registry password")
        parser.add_argument(
            "-i",
            "--insecure",
            action="store_true",
            help="skip registry SSL/TLS validations",
        )
        parser.add_argument(
            "-b",
            "--basic-auth",
            action="store_true",
            help="use Basic auth instead of Bearer tokens",
        )
        parser.add_argument(
            "-v", "--verbose", action="store_true", help="log every request"
        )
        parser.add_argument("registry", help="registry URL")
        self.arguments(parser)
        return parser


def make_client(args: argparse.Namespace, config: Config) -> RegistryClient:
    try:
        options = config.options()
    except ValueError as e:
        raise CommandError(f"incorrect timeout: {config['timeout']!r}") from e

    options = replace(
        options,
        insecure=args.insecure or options.insecure,
        basic_auth=args.basic_auth or options.basic_auth,
    )
    return RegistryClient(
        args.registry,
        args.user or str(config["registry_user"]),
        args.password or str(config["registry_password"]),
        options,
    )


def registry_host(registry: str) -> str:
    url = httpx.URL(registry)
    return f"{url.host}:{url.port}" if url.port else url.host


def split_reference(reference: str) -> tuple[str, str]:
    if "@" in reference:
        repository, digest = reference.split("@", 1)
        return repository, digest

    repository, _, tag = reference.rpartition(":")
    if not repository or "/" in tag:
        return reference, "latest"

    return repository, tag


async def run_repos(args: argparse.Namespace, config: Config) -> None:
    async with make_client(args, config) as client:
        try:
            catalog = await client.catalog()
        except (RegistryError, httpx.HTTPError) as e:
            raise CommandError(f"can not get catalog: {e}") from e

    for repository in catalog:
        print(repository)


def read_repositories(repos_file: str | None) -> list[str]:
    if repos_file is None:
        logging.info("reading from stdin")
        lines = sys.stdin.read().splitlines()
    else:
        try:
            with open(repos_file, "r") as file:
                lines = file.read().splitlines()
        except OSError as e:
            raise CommandError(f"can not read the input file: {e}") from e

    return [line.strip() for line in lines if line.strip()]


async def run_tags(args: argparse.Namespace, config: Config) -> None:
    try:
        host = registry_host(args.registry)
    except httpx.InvalidURL as e:
        raise CommandError(f"incorrect registry URL: {e}") from e

    repositories = read_repositories(args.repos_file)

    async with make_client(args, config) as client:
        for repository in repositories:
            try:
                tags = await client.tags(repository)
            except (RegistryError, httpx.HTTPError) as e:
                logging.warning(f"can not get tags from {repository}: {e}")
                continue

            for tag in tags:
                if args.names:
                    separator = "@" if tag.startswith("sha256:") else ":"
                    print(f"{host}/{repository}{separator}{tag}")
                else:
                    print(f"{repository}/{tag}")


async def run_manifest(args: argparse.Namespace, config: Config) -> None:
    repository, tag = split_reference(args.reference)

    async with make_client(args, config) as client:
        try:
            manifest = await client.manifest(repository, tag)
        except (RegistryError, httpx.HTTPError) as e:
            raise CommandError(
                f"can not get manifest of {repository}:{tag}: {e}"
            ) from e

    if manifest == Manifest():
        return

    print(f"mediaType\t{manifest.media_type}")
    print(f"config\t{manifest.config.digest}\t{manifest.config.size}")
    for layer in manifest.layers:
        print(f"{layer.digest}\t{layer.size}\t{layer.media_type}")
    print(f"size\t{manifest.size}")


def tags_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-n",
        "--names",
        action="store_true",
        help="print pullable image names",
    )
    parser.add_argument("repos_file", nargs="?", help="file with repositories")


def manifest_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("reference", help="repository[:tag] or repository@digest")


COMMANDS = (
    Command(
        name="repos",
        usage="repos [-u USER] [-p PASS] [-ib] <registry-url>",
        short="lists repositories in a container registry",
        long="""
Prints to the standard output all the repositories available in the
container registry listening at <registry-url>.
""",
        run=run_repos,
        arguments=lambda parser: None,
    ),
    Command(
        name="tags",
        usage="tags [-u USER] [-p PASS] [-ibn] <registry-url> [repos-file]",
        short="lists tags for a list of repos in a container registry",
        long="""
Prints to the standard output all the existing tags in a container registry,
given a list of repositories.

The list of repositories must match the output format of the 'repos' command.
It is read from [repos-file], or from stdin when no file is given.

The default output is a one-per-line 'repository/tag' collection. The -n flag
prints 'registry-host/repository[: | @]tag' instead (':' for image tags, '@'
for digests).
""",
        run=run_tags,
        arguments=tags_arguments,
    ),
    Command(
        name="manifest",
        usage="manifest [-u USER] [-p PASS] [-ib] <registry-url> <repository>[:tag]",
        short="shows the layers of an image manifest",
        long="""
Prints the media type, config digest and layers of the image manifest for
<repository>[:tag] (the tag defaults to 'latest'). Manifest lists are not
resolved and print nothing.
""",
        run=run_manifest,
        arguments=manifest_arguments,
    ),
)


def print_usage(commands: Sequence[Command], file=None) -> None:
    file = file or sys.stderr
    width = max(len(command.name) for command in commands)
    print(f"Usage: {PROG} <command> [arguments]\n\nCommands:", file=file)
    for command in commands:
        print(f"  {command.name:<{width}}  {command.short}", file=file)
    print(f"\nRun '{PROG} help <command>' for details.", file=file)


def print_help(commands: Sequence[Command], topics: list[str]) -> int:
    if not topics:
        print_usage(commands, file=sys.stdout)
        return 0

    if len(topics) > 1:
        print(f"usage: {PROG} help <command>", file=sys.stderr)
        return 2

    for command in commands:
        if command.name == topics[0]:
            print(f"usage: {PROG} {command.usage}")
            print(command.long.rstrip())
            return 0

    print(f"{PROG}: unknown help topic {topics[0]!r}", file=sys.stderr)
    return 2


def dispatch(commands: Sequence[Command], argv: list[str]) -> int:
    if not argv:
        print_usage(commands)
        return 2

    name, rest = argv[0], argv[1:]
    if name == "help":
        return print_help(commands, rest)

    command = next((c for c in commands if c.name == name), None)
    if command is None:
        print(
            f"{PROG}: unknown subcommand {name!r}\n"
            f"Run '{PROG} help' for usage.",
            file=sys.stderr,
        )
        return 2

    try:
        args = command.parser().parse_args(rest)
    except SystemExit as e:
        return int(e.code or 0)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(command.run(args, Config()))
    except (CommandError, RegistryError, httpx.HTTPError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 0


def main() -> None:
    sys.exit(dispatch(COMMANDS, sys.argv[1:]))


if __name__ == "__main__":
    main()
