# Grievance and attachment repositories: in-memory (default) and MongoDB

import asyncio
import logging
import uuid
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Protocol

from pymongo import ASCENDING, MongoClient, ReturnDocument

from .helpers import generate_reference_id
from .models import (INITIAL_STATUS, Attachment, Grievance, GrievanceCreate,
                     GrievanceStatistics)

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def new_id() -> str:
    return str(uuid.uuid4())

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Current time, nudged forward so ``updated_at`` always advances."""
    now = now_utc()
    if previous is not None:
        if previous.tzinfo is None:
            previous = previous.replace(tzinfo=timezone.utc)
        if now <= previous:
            now = previous + timedelta(microseconds=1)
    return now

def build_grievance(data: GrievanceCreate) -> Grievance:
    ts = now_utc()
    anonymous = data.is_anonymous
    return Grievance(
        id=new_id(), reference_id=generate_reference_id(),
        user_id=data.user_id, title=data.title, description=data.description,
        category=data.category, priority=data.priority.value,
        is_anonymous=anonymous,
        submitter_name=None if anonymous else data.submitter_name,
        submitter_email=None if anonymous else data.submitter_email,
        status=INITIAL_STATUS, created_at=ts, updated_at=ts)

def summarize(grievances: List[Grievance]) -> GrievanceStatistics:
    recent = sorted(grievances, key=lambda g: g.created_at, reverse=True)[:RECENT_LIMIT]
    return GrievanceStatistics(
        total=len(grievances),
        by_status=dict(Counter(g.status for g in grievances)),
        by_category=dict(Counter(g.category for g in grievances)),
        by_priority=dict(Counter(g.priority for g in grievances)),
        recent=recent)

# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------
class GrievanceRepository(Protocol):
    async def create(self, data: GrievanceCreate) -> Grievance: ...
    async def list(self) -> List[Grievance]: ...
    async def get(self, grievance_id: str) -> Optional[Grievance]: ...
    async def update_status(self, grievance_id: str, status: str) -> Optional[Grievance]: ...
    async def statistics(self) -> GrievanceStatistics: ...

class AttachmentRepository(Protocol):
    async def add_attachment(self, attachment: Attachment) -> Attachment: ...
    async def get_attachment(self, file_id: str) -> Optional[Attachment]: ...
    async def list_attachments(self, grievance_id: str) -> List[Attachment]: ...
    async def delete_attachment(self, file_id: str) -> bool: ...

class Store(GrievanceRepository, AttachmentRepository, Protocol):
    def close(self) -> None: ...

# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------
class InMemoryStore:
    """Process-local store; contents are lost on restart.

    Each method body runs without awaiting, so a mutation is never observed
    half-applied by another request on the same event loop.
    """

    def __init__(self):
        self._grievances: Dict[str, Grievance] = {}
        self._attachments: Dict[str, Attachment] = {}

    async def create(self, data: GrievanceCreate) -> Grievance:
        grievance = build_grievance(data)
        self._grievances[grievance.id] = grievance
        return grievance.model_copy()

    async def list(self) -> List[Grievance]:
        return [g.model_copy() for g in self._grievances.values()]

    async def get(self, grievance_id: str) -> Optional[Grievance]:
        g = self._grievances.get(grievance_id)
        return g.model_copy() if g else None

    async def update_status(self, grievance_id: str, status: str) -> Optional[Grievance]:
        g = self._grievances.get(grievance_id)
        if g is None:
            return None
        g.status = status
        g.updated_at = next_timestamp(g.updated_at)
        return g.model_copy()

    async def statistics(self) -> GrievanceStatistics:
        return summarize(list(self._grievances.values()))

    async def add_attachment(self, attachment: Attachment) -> Attachment:
        self._attachments[attachment.id] = attachment
        return attachment

    async def get_attachment(self, file_id: str) -> Optional[Attachment]:
        return self._attachments.get(file_id)

    async def list_attachments(self, grievance_id: str) -> List[Attachment]:
        return [a for a in self._attachments.values() if a.grievance_id == grievance_id]

    async def delete_attachment(self, file_id: str) -> bool:
        return self._attachments.pop(file_id, None) is not None

    def close(self) -> None:
        pass

# ---------------------------------------------------------------------------
# MongoDB store
# ---------------------------------------------------------------------------
def _from_doc(model, doc: Optional[dict]):
    if not doc:
        return None
    doc = dict(doc)
    doc["id"] = doc.pop("_id")
    return model(**doc)

def _to_doc(item) -> dict:
    doc = item.model_dump()
    doc["_id"] = doc.pop("id")
    return doc

class MongoStore:
    """pymongo-backed store; blocking driver calls run on a thread pool."""

    def __init__(self, db, executor: Optional[ThreadPoolExecutor] = None, client=None):
        self.db = db
        self.client = client
        self.executor = executor or ThreadPoolExecutor(max_workers=10)

    @classmethod
    def connect(cls, url: str, db_name: str) -> "MongoStore":
        client = MongoClient(url, tz_aware=True)
        logger.info("Connected to MongoDB at %s (db=%s)", url, db_name)
        return cls(client[db_name], client=client)

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, lambda: fn(*args, **kwargs))

    async def ensure_indexes(self) -> None:
        await self._run(self.db.grievances.create_index, [("seq", ASCENDING)])
        await self._run(self.db.grievances.create_index, "status")
        await self._run(self.db.attachments.create_index, "grievance_id")
        logger.info("Database initialized")

    async def create(self, data: GrievanceCreate) -> Grievance:
        grievance = build_grievance(data)
        doc = _to_doc(grievance)
        # insertion order is kept explicitly; created_at can tie
        doc["seq"] = await self._run(self._next_seq)
        await self._run(self.db.grievances.insert_one, doc)
        return grievance

    def _next_seq(self) -> int:
        counter = self.db.counters.find_one_and_update(
            {"_id": "grievances"}, {"$inc": {"value": 1}},
            upsert=True, return_document=ReturnDocument.AFTER)
        return counter["value"]

    async def list(self) -> List[Grievance]:
        def fetch():
            return list(self.db.grievances.find({}, {"seq": 0}).sort("seq", ASCENDING))
        docs = await self._run(fetch)
        return [_from_doc(Grievance, d) for d in docs]

    async def get(self, grievance_id: str) -> Optional[Grievance]:
        doc = await self._run(self.db.grievances.find_one, {"_id": grievance_id}, {"seq": 0})
        return _from_doc(Grievance, doc)

    async def update_status(self, grievance_id: str, status: str) -> Optional[Grievance]:
        current = await self.get(grievance_id)
        if current is None:
            return None
        def update():
            return self.db.grievances.find_one_and_update(
                {"_id": grievance_id},
                {"$set": {"status": status, "updated_at": next_timestamp(current.updated_at)}},
                projection={"seq": 0}, return_document=ReturnDocument.AFTER)
        doc = await self._run(update)
        return _from_doc(Grievance, doc)

    async def statistics(self) -> GrievanceStatistics:
        return summarize(await self.list())

    async def add_attachment(self, attachment: Attachment) -> Attachment:
        await self._run(self.db.attachments.insert_one, _to_doc(attachment))
        return attachment

    async def get_attachment(self, file_id: str) -> Optional[Attachment]:
        doc = await self._run(self.db.attachments.find_one, {"_id": file_id})
        return _from_doc(Attachment, doc)

    async def list_attachments(self, grievance_id: str) -> List[Attachment]:
        def fetch():
            return list(self.db.attachments.find({"grievance_id": grievance_id}).sort("uploaded_at", ASCENDING))
        return [_from_doc(Attachment, d) for d in await self._run(fetch)]

    async def delete_attachment(self, file_id: str) -> bool:
        result = await self._run(self.db.attachments.delete_one, {"_id": file_id})
        return result.deleted_count > 0

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
        self.executor.shutdown(wait=False)

def create_store(backend: str, mongodb_url: str = "", mongodb_db: str = "") -> Store:
    if backend == "memory":
        return InMemoryStore()
    if backend == "mongo":
        return MongoStore.connect(mongodb_url, mongodb_db)
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend!r}")
