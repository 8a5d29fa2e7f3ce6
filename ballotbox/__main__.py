# ballotbox/__main__.py

"""
Command-line entry points for snapshot maintenance and offline tallying.

    python -m ballotbox init              # load (or create) the snapshot, seed the admin, save
    python -m ballotbox tally 3           # print the tally of election 3
    python -m ballotbox export votes.csv  # export the votes table
    python -m ballotbox aggregate a.csv b.csv
"""

import argparse
import sys

from ballotbox import config
from ballotbox.election.lifecycle import ElectionService
from ballotbox.errors import BallotBoxError
from ballotbox.tally.tally import aggregate_vote_exports


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="ballotbox", description="""
            Election record store maintenance and tallying.""")
    parser.add_argument("--data_dir", default=config.DATA_DIR, help="""
                        Snapshot directory. Defaults to $BALLOTBOX_DATA_DIR or "./data".""")
    parser.add_argument("--log_level", default=config.LOG_LEVEL)
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init", help="Load the snapshot, seed the default admin and save.")

    tally = commands.add_parser("tally", help="Print the tally for one election.")
    tally.add_argument("election_id", type=int)

    export = commands.add_parser("export", help="Write the votes table to a CSV file.")
    export.add_argument("path")

    aggregate = commands.add_parser("aggregate", help="""
                                    Sum per-(election, choice) counts over one or more votes exports.""")
    aggregate.add_argument("paths", nargs="+")

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config.configure_logging(args.log_level)

    if args.command == "aggregate":
        print("Aggregated tally (from CSV files):")
        for (election_id, choice), count in aggregate_vote_exports(args.paths).items():
            print(f"  election={election_id} choice={choice} -> {count} votes")
        return 0

    service = ElectionService()
    try:
        service.load(args.data_dir)
        if args.command == "init":
            service.ensure_default_admin()
            service.save(args.data_dir)
        elif args.command == "tally":
            result = service.tally(args.election_id)
            print(f"Tally for election {result.election_id} ({result.title}):")
            for i, (name, count) in enumerate(zip(result.candidates, result.counts)):
                print(f"  [{i}] {name:<20} : {count} ({result.percentages[i]:.2f}%)")
            print(f"Winner: [{result.winner_index}] {result.winner_name}")
        elif args.command == "export":
            count = service.export_votes(args.path)
            print(f"Exported {count} votes to {args.path}")
    except BallotBoxError as e:
        print(f"{e.kind}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
