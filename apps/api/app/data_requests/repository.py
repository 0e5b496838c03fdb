from __future__ import annotations

from app.data_requests.models import DataRequest, DataRequestHistory
from app.platform.store import EntityStore
from app.workflow.history import HistoryTrail


class DataRequestStore(EntityStore[DataRequest]):
    model = DataRequest
    resource = "request"


request_history = HistoryTrail(DataRequestHistory, entity_type="request")
