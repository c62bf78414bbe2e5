from apiwatch.db.database import Base

# Import all models so metadata knows about every table
from .endpoint import Endpoint
from .metric import Metric
from .incident import Incident
from .alert import Alert
from .system_status import SystemStatus
from .enums import AlertType, AlertStatus, IncidentStatus, Severity, HttpMethod
