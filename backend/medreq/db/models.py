# Import every model so Base.metadata knows all tables.
from medreq.models.approval_log import ApprovalLog  # noqa: F401
from medreq.models.histology_item import HistologyItem  # noqa: F401
from medreq.models.message import Message  # noqa: F401
from medreq.models.notification import Notification  # noqa: F401
from medreq.models.payment import Payment  # noqa: F401
from medreq.models.requisition import Requisition  # noqa: F401
from medreq.models.requisition_item import RequisitionItem  # noqa: F401
from medreq.models.user import User  # noqa: F401
