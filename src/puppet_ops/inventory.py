"""
Inventory queries against the stored-configs database on each master.

The `mysql` client runs on the master itself over the remote shell; the
`hosts` and `resources` tables are the ones puppet's storeconfigs maintains.
"""

import logging
import shlex
from typing import List, Optional

from .errors import ToolError
from .parsers import is_valid_class_name, normalize_class_name
from .remote import RemoteShell

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Raised when the inventory database cannot be queried."""
    pass


class InventoryDB:
    def __init__(self, remote: RemoteShell, master: str, database: str = "puppet"):
        self.remote = remote
        self.master = master
        self.database = database

    def query(self, sql: str) -> List[List[str]]:
        """Run `sql` and return the rows as lists of tab-separated fields."""
        command = f"mysql -B -N -e {shlex.quote(sql)} {shlex.quote(self.database)}"
        try:
            out, _, _ = self.remote.run(self.master, command)
        except ToolError as e:
            raise InventoryError(f"Inventory query on {self.master} failed: {e}") from e
        return [line.split("\t") for line in out.splitlines() if line.strip()]

    def host_names(self) -> List[str]:
        return [row[0] for row in self.query("SELECT name FROM hosts")]

    def host_with_class(self, class_name: str) -> Optional[str]:
        """One host currently assigned `class_name`, or None."""
        if not is_valid_class_name(class_name):
            raise InventoryError(f"Refusing to query for invalid class name: {class_name!r}")
        title = normalize_class_name(class_name).lower()
        rows = self.query(
            "SELECT h.name FROM hosts h JOIN resources r ON r.host_id = h.id "
            f"WHERE r.restype = 'Class' AND LOWER(r.title) = '{title}' LIMIT 1"
        )
        return rows[0][0] if rows else None
