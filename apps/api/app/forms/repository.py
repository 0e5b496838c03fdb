from __future__ import annotations

from app.forms.models import Form, FormHistory
from app.platform.store import EntityStore
from app.workflow.history import HistoryTrail


class FormStore(EntityStore[Form]):
    model = Form
    resource = "form"


form_history = HistoryTrail(FormHistory, entity_type="form")
