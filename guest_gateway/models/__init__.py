from guest_gateway.models.role import Role
from guest_gateway.models.client_identity import ClientIdentity
from guest_gateway.models.daily_usage import DailyUsage
from guest_gateway.models.request_log import RequestLog

__all__ = [
    "Role",
    "ClientIdentity",
    "DailyUsage",
    "RequestLog",
]
