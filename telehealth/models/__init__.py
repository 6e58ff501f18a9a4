# Models package: import all models here so Alembic can discover them.

from telehealth.models.customer import Customer  # noqa: F401
from telehealth.models.billing import Subscription, Order  # noqa: F401
from telehealth.models.webhook_event import WebhookEvent  # noqa: F401
from telehealth.models.audit import AdminActivity  # noqa: F401
from telehealth.models.intake import IntakeSubmission  # noqa: F401
from telehealth.models.analytics import PageView, FunnelEvent  # noqa: F401
