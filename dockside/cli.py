"""
dockside command line.

    dockside doctor [--json] [--verbose]
    dockside run mongo:4.0.17 --wait stdout:"waiting for connections" -p 27017
    dockside run redis:7 --wait seconds:2 --keep

`run` starts one container, waits for its readiness conditions (in the order
given), prints its id and port map as JSON and disposes of it, unless --keep
is passed.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from dockside.config import Settings, default_client
from dockside.container import Container
from dockside.exceptions import DocksideError
from dockside.models import CleanupPolicy, Image, Port, RunArgs, WaitFor


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dockside",
        description="Start throwaway containers for tests and check the environment.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    doctor = sub.add_parser("doctor", help="Check the local container environment.")
    doctor.add_argument("--json", action="store_true", help="Output as JSON.")
    doctor.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
        help="Show check details.",
    )

    run = sub.add_parser("run", help="Start a container and print its ports.")
    run.add_argument("image", help="Image reference, name[:tag].")
    run.add_argument(
        "--wait",
        action="append",
        default=[],
        metavar="KIND:VALUE",
        help="Readiness condition: stdout:MSG, stderr:MSG or seconds:N. Repeatable, in order.",
    )
    run.add_argument(
        "--timeout", type=float, help="Seconds to wait for each log message."
    )
    run.add_argument(
        "-p", "--port", action="append", default=[], help="Port to publish, [HOST:]PORT[/PROTO]."
    )
    run.add_argument(
        "-e", "--env", action="append", default=[], help="Environment variable, KEY=VALUE."
    )
    run.add_argument("--name", help="Container name.")
    run.add_argument("--network", help="Network to attach.")
    run.add_argument(
        "--runtime",
        choices=["auto", "docker", "podman", "http"],
        help="Runtime client override (default: DOCKSIDE_RUNTIME).",
    )
    run.add_argument(
        "--keep", action="store_true", help="Leave the container running afterwards."
    )
    return parser.parse_args(argv)


def _build_image(args: argparse.Namespace) -> Image:
    image = Image.parse(args.image)
    for spec in args.wait:
        kind, sep, value = spec.partition(":")
        if not sep:
            raise ValueError(f"--wait expects KIND:VALUE, got {spec!r}")
        if kind == "stdout":
            image = image.with_wait_for(WaitFor.stdout(value, timeout=args.timeout))
        elif kind == "stderr":
            image = image.with_wait_for(WaitFor.stderr(value, timeout=args.timeout))
        elif kind == "seconds":
            image = image.with_wait_for(WaitFor.seconds(float(value)))
        else:
            raise ValueError(f"Unknown --wait kind {kind!r}")
    for port in args.port:
        image = image.with_mapped_port(Port.parse(port))
    for pair in args.env:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"--env expects KEY=VALUE, got {pair!r}")
        image = image.with_env_var(key, value)
    return image


async def _run(args: argparse.Namespace) -> int:
    image = _build_image(args)
    settings = Settings()
    if args.runtime:
        settings.runtime = args.runtime
    client = default_client(settings)
    cleanup = CleanupPolicy.KEEP if args.keep else None
    run_args = RunArgs(name=args.name, network=args.network)

    container = await Container.create(image, client, cleanup=cleanup, run_args=run_args)
    async with container:
        ports = await container.ports()
        print(
            json.dumps(
                {
                    "id": container.id,
                    "image": image.descriptor(),
                    "cleanup": container.cleanup.value,
                    "ports": ports.to_dict(),
                }
            )
        )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "doctor":
        from dockside.doctor import diagnose, render

        diagnosis = diagnose()
        if args.json:
            print(diagnosis.model_dump_json(indent=2))
        else:
            print(render(diagnosis, verbose=args.verbose))
        return 0 if diagnosis.healthy else 1

    try:
        return asyncio.run(_run(args))
    except DocksideError as exc:
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
