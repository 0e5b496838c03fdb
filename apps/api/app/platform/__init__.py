from app.platform.storage import BlobStat, BlobStore, LocalBlobStore, S3BlobStore, get_blob_store
from app.platform.store import EntityStore
from app.platform.tasks import CeleryTaskQueue, TaskQueue, TaskSpec, get_task_queue

__all__ = [
    "BlobStat",
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "get_blob_store",
    "EntityStore",
    "CeleryTaskQueue",
    "TaskQueue",
    "TaskSpec",
    "get_task_queue",
]
