"""
list-ticket-states - print the state of Lighthouse tickets.

Usage:
    list-ticket-states 1201 1207 1310
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

import httpx

from .config import CheckerConfig, ConfigError, LighthouseSettings
from .errors import ExitCode

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


@dataclass
class Ticket:
    number: int
    state: str
    title: str

    def format_row(self) -> str:
        return "%8s %20s %s" % (self.number, self.state, self.title)


class LighthouseClient:
    """Minimal read-only client for the Lighthouse REST API."""

    def __init__(self, settings: LighthouseSettings, transport: Optional[httpx.BaseTransport] = None):
        if not settings.account or not settings.token:
            raise ConfigError("Lighthouse account and token must be configured (lighthouse section or LIGHTHOUSE_ACCOUNT/LIGHTHOUSE_TOKEN)")
        self.project_id = settings.project_id
        self._client = httpx.Client(
            base_url=f"https://{settings.account}.lighthouseapp.com",
            headers={"X-LighthouseToken": settings.token, "Accept": "application/json"},
            timeout=httpx.Timeout(REQUEST_TIMEOUT),
            transport=transport,
        )

    def close(self):
        self._client.close()

    def __enter__(self) -> "LighthouseClient":
        return self

    def __exit__(self, *exc):
        self.close()

    def get_ticket(self, number: int) -> Optional[Ticket]:
        """Fetch one ticket, or None if it does not exist."""
        response = self._client.get(f"/projects/{self.project_id}/tickets/{number}.json")
        if response.status_code == 404:
            logger.warning(f"Ticket {number} not found")
            return None
        response.raise_for_status()
        data = response.json().get("ticket", {})
        return Ticket(
            number=int(data.get("number", number)),
            state=str(data.get("state", "")),
            title=str(data.get("title", "")),
        )


def parse_ticket_numbers(values: Iterable[str]) -> List[int]:
    """Ticket numbers from the command line; blank and non-numeric values are skipped."""
    numbers = []
    for value in values:
        value = value.strip().lstrip("#")
        if not value:
            continue
        if not value.isdigit():
            logger.warning(f"Skipping non-numeric ticket '{value}'")
            continue
        numbers.append(int(value))
    return numbers


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="list-ticket-states", description="List Lighthouse ticket states")
    parser.add_argument("tickets", nargs="*", help="Ticket numbers")
    parser.add_argument("-c", dest="config_file", type=Path, help="YAML config file")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    if not args.tickets or not any(t.strip() for t in args.tickets):
        print("You need to pass at least one ticket number", file=sys.stderr)
        return int(ExitCode.BAD_ARGUMENTS)

    try:
        config = CheckerConfig.load(args.config_file)
        with LighthouseClient(config.lighthouse) as client:
            tickets = [client.get_ticket(n) for n in parse_ticket_numbers(args.tickets)]
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return int(ExitCode.BAD_ARGUMENTS)
    except httpx.HTTPError as e:
        print(f"Lighthouse request failed: {e}", file=sys.stderr)
        return int(ExitCode.TOOL_FAILURE)

    for ticket in tickets:
        if ticket is not None:
            print(ticket.format_row())
    return int(ExitCode.OK)


if __name__ == "__main__":
    sys.exit(main())
