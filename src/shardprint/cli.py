import argparse
import json
import sys
from pathlib import Path

import msgspec

from shardprint.errors import ShardPrintError
from shardprint.loggers.error_log import setup_error_logger
from shardprint.printer import FilterDataPrinter
from shardprint.runtime.settings import PrintSettings, load_settings
from shardprint.store.memory_store import SHARD_POLICIES, shard_dataset
from shardprint.transport.distributed import InProcessGroup


def validate_path(path: str, what: str) -> Path:
    p = Path(path)
    if not p.exists():
        print(f"Error: {what} '{path}' not found.", file=sys.stderr)
        sys.exit(1)
    return p.resolve()


def run_render(args) -> int:
    dataset_path = validate_path(args.dataset, "Dataset")
    try:
        dataset = json.loads(dataset_path.read_text(encoding="utf-8"))
    except ValueError as e:
        print(f"Error: invalid dataset '{args.dataset}': {e}", file=sys.stderr)
        return 2
    if not isinstance(dataset, dict):
        print(f"Error: dataset '{args.dataset}' must be a JSON object", file=sys.stderr)
        return 2

    if args.config:
        config_path = validate_path(args.config, "Config")
        try:
            settings = load_settings(config_path.read_bytes())
        except (msgspec.MsgspecError, ValueError) as e:
            print(f"Error: invalid config '{args.config}': {e}", file=sys.stderr)
            return 2
    else:
        settings = PrintSettings()

    if args.ranks <= 0:
        print("Error: --ranks must be > 0", file=sys.stderr)
        return 2

    group = InProcessGroup(args.ranks)

    def work(channel):
        store = shard_dataset(dataset, channel.rank, channel.world_size, args.policy)
        return FilterDataPrinter(store, channel, settings, stream=sys.stdout).render()

    try:
        group.run(work)
    except (ShardPrintError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def build_parser():
    parser = argparse.ArgumentParser("shardprint")

    sub = parser.add_subparsers(dest="command", required=True)

    render_parser = sub.add_parser("render")
    render_parser.add_argument("dataset")
    render_parser.add_argument("--config", type=str, default=None)
    render_parser.add_argument("--ranks", type=int, default=1)
    render_parser.add_argument(
        "--policy", type=str, default="round_robin", choices=SHARD_POLICIES
    )

    return parser


def main(argv=None):
    setup_error_logger()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "render":
        sys.exit(run_render(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
