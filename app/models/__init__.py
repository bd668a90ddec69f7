from app.models.billing import Bill, BillStatus, Invoice, Payment  # noqa: F401
from app.models.customer import Customer  # noqa: F401
from app.models.delivery import DeliveryEntry, DeliveryType  # noqa: F401
from app.models.payment_log import PaymentEventType, PaymentLogEntry  # noqa: F401
from app.models.sequence import DocumentSequence  # noqa: F401
from app.models.tenant import Tenant  # noqa: F401
