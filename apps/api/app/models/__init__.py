from app.data_requests.models import DataRequest, DataRequestHistory
from app.forms.models import Form, FormHistory
from app.users.models import Tenant, TenantUser, User

__all__ = [
	"Tenant",
	"TenantUser",
	"User",
	"Form",
	"FormHistory",
	"DataRequest",
	"DataRequestHistory",
]
