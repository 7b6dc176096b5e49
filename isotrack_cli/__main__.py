from __future__ import annotations

import sys

from isotrack_cli.cli import main as cli_main
from isotrack_cli.exceptions import IsoTrackError


def main() -> None:
    try:
        cli_main()
    except IsoTrackError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print()
        sys.exit(130)


if __name__ == "__main__":
    main()
