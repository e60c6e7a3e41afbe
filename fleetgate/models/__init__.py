# Fleet gate local cache models
# Import all models here for SQLAlchemy discovery

from fleetgate.models.cache_record import CacheRecord          # noqa
from fleetgate.models.notification_log import NotificationLog  # noqa
