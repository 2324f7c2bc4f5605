"""In-memory stand-in for the motor collection calls the services make."""
import copy
from datetime import datetime, timezone
from types import SimpleNamespace

from pymongo.errors import DuplicateKeyError

_MISSING = object()


def _compare(value, condition):
    if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$in":
                if value not in operand:
                    return False
            elif op == "$ne":
                if value == operand:
                    return False
            elif op == "$lt":
                if value is None or not value < operand:
                    return False
            elif op == "$gt":
                if value is None or not value > operand:
                    return False
            elif op == "$type":
                if operand == "string" and not isinstance(value, str):
                    return False
            else:
                raise NotImplementedError(op)
        return True
    return value == condition


def matches(doc, query):
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        if not _compare(doc.get(key), condition):
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        keys = key if isinstance(key, list) else [(key, direction)]
        for field, order in reversed(keys):
            self._docs.sort(key=lambda d: (d.get(field) is None, d.get(field)), reverse=order < 0)
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """Enough of AsyncIOMotorCollection for the services, with optional unique keys."""

    def __init__(self, unique=None):
        self.docs = []
        self.unique = unique or []

    def _project(self, doc, projection):
        doc = copy.deepcopy(doc)
        if projection == {"_id": 0}:
            doc.pop("_id", None)
        elif projection:
            doc = {k: v for k, v in doc.items() if projection.get(k)}
        return doc

    async def insert_one(self, doc):
        for keys in self.unique:
            if all(doc.get(k) is not None for k in keys) and any(
                all(existing.get(k) == doc.get(k) for k in keys) for existing in self.docs
            ):
                raise DuplicateKeyError(f"duplicate key {keys}")
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc.get("_id"))

    async def find_one(self, query, projection=None, sort=None):
        for doc in self.docs:
            if matches(doc, query):
                return self._project(doc, projection)
        return None

    def find(self, query, projection=None):
        return FakeCursor([self._project(d, projection) for d in self.docs if matches(d, query)])

    def _apply(self, doc, update, inserted=False):
        for key, value in update.get("$set", {}).items():
            doc[key] = copy.deepcopy(value)
        for key, value in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + value
        if inserted:
            for key, value in update.get("$setOnInsert", {}).items():
                doc[key] = copy.deepcopy(value)

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update)
                return SimpleNamespace(matched_count=1, modified_count=int(before != doc), upserted_id=None)
        if upsert:
            doc = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
            self._apply(doc, update, inserted=True)
            self.docs.append(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc.get("_id"))
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def find_one_and_update(self, query, update):
        for doc in self.docs:
            if matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update)
                return before
        return None

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


FIRM_ID = "firm-1"
ADMIN_ID = "user-admin"


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
