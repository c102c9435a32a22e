"""
YAML-backed entity store with serialized, all-or-nothing transactions.

The whole store is one YAML document guarded by a file lock. A transaction
loads the document, lets the caller mutate it, and writes it back only when
the block exits cleanly; any exception discards every change. Because the
lock is held for the whole read-modify-write, counter updates made inside a
transaction can never interleave with another writer.
"""
import logging
import os
from contextlib import contextmanager

import yaml
from filelock import FileLock, Timeout

from .errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

TABLES = ('tournaments', 'tournament_teams', 'rounds', 'matches', 'events', 'leaderboards')
STORE_FILE = 'store.yaml'


def _empty_document():
    doc = {name: {} for name in TABLES}
    doc['sequences'] = {}
    return doc


class Transaction:
    """Mutable view of the store document for the duration of one transaction."""

    def __init__(self, data):
        self.data = data
        self._after_commit = []

    def table(self, name):
        return self.data.setdefault(name, {})

    def get(self, table, key):
        return self.table(table).get(key)

    def require(self, table, key, label=None):
        record = self.get(table, key)
        if record is None:
            raise NotFoundError(f"{label or table} '{key}' not found", key=key)
        return record

    def put(self, table, record):
        self.table(table)[record['id']] = record
        return record

    def delete(self, table, key):
        self.table(table).pop(key, None)

    def rows(self, table, **filters):
        """Return records whose fields equal every given filter value."""
        return [
            r for r in self.table(table).values()
            if all(r.get(field) == value for field, value in filters.items())
        ]

    def next_sequence(self, name):
        sequences = self.data.setdefault('sequences', {})
        sequences[name] = sequences.get(name, 0) + 1
        return sequences[name]

    def after_commit(self, callback):
        """Run ``callback`` once the document is durably written."""
        self._after_commit.append(callback)


class EntityStore:
    def __init__(self, data_dir, lock_timeout=10):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self.path = os.path.join(data_dir, STORE_FILE)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def _load(self):
        if not os.path.exists(self.path):
            return _empty_document()
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if not data:
            return _empty_document()
        for name in TABLES:
            if data.get(name) is None:
                data[name] = {}
        data.setdefault('sequences', {})
        return data

    def _save(self, data):
        tmp_path = self.path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_path, self.path)

    @contextmanager
    def _locked(self):
        try:
            self._lock.acquire()
        except Timeout:
            raise ConflictError('Store is busy; retry shortly', code='store_busy')
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self):
        """Serialized read-modify-write; committed only on clean exit."""
        with self._locked():
            txn = Transaction(self._load())
            yield txn
            self._save(txn.data)
            # Hooks run under the lock so per-match delivery order follows commit order.
            for callback in txn._after_commit:
                try:
                    callback()
                except Exception:
                    logger.exception('after-commit hook failed')

    @contextmanager
    def snapshot(self):
        """Consistent read-only view; changes made to it are never written."""
        with self._locked():
            yield Transaction(self._load())
