from __future__ import annotations

import sqlite3
from typing import Optional

from ..core.cancel import CancelToken, check
from ..core.errors import OwnerNotFound, PointerWriteFailed
from ..providers.db import check_identifier, get_conn


class PointerSynchronizer:
    """Write an owner's canonical asset URL into their existing row.

    One ``UPDATE`` per call, committed immediately. There is no rollback of
    the upload that preceded it: if this fails the object stays in the bucket.
    """

    def __init__(self, db_path: str, table: str = "users", url_column: str = "avatar_url", id_column: str = "id"):
        self.db_path = db_path
        self.table = check_identifier(table)
        self.url_column = check_identifier(url_column)
        self.id_column = check_identifier(id_column)
        self._sql = f"UPDATE {self.table} SET {self.url_column} = ? WHERE {self.id_column} = ?"

    def update_pointer(self, owner_id: int, url: str, cancel: Optional[CancelToken] = None):
        check(cancel)
        try:
            conn = get_conn(self.db_path)
        except sqlite3.Error as e:
            raise PointerWriteFailed(f"db_open_failed: {e}", owner_id=owner_id) from e

        try:
            cur = conn.execute(self._sql, (url, owner_id))
            if cur.rowcount == 0:
                conn.rollback()
                raise OwnerNotFound(f"owner_not_found: {owner_id}", owner_id=owner_id)
            conn.commit()
        except sqlite3.Error as e:
            raise PointerWriteFailed(f"db_update_failed: {e}", owner_id=owner_id) from e
        finally:
            conn.close()
