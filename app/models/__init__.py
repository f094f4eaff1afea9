from app.models.user import User, UserRole
from app.models.course import Course
from app.models.resource import Resource, ResourceType, ResourceStatus, Semester
from app.models.bookmark import Bookmark
from app.models.resource_request import ResourceRequest, RequestStatus
from app.models.notification import Notification, NotificationType
from app.models.audit_log import AuditLog, AuditAction
from app.models.token_blacklist import TokenBlacklist

__all__ = [
    "User",
    "UserRole",
    "Course",
    "Resource",
    "ResourceType",
    "ResourceStatus",
    "Semester",
    "Bookmark",
    "ResourceRequest",
    "RequestStatus",
    "Notification",
    "NotificationType",
    "AuditLog",
    "AuditAction",
    "TokenBlacklist",
]
