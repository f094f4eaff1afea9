from app.schemas.user import UserCreate, UserResponse, Token
from app.schemas.course import CourseCreate, CourseResponse
from app.schemas.resource import ResourceMetadata, ResourceResponse, ResourceList
from app.schemas.resource_request import ResourceRequestCreate, ResourceRequestResponse

__all__ = [
    "UserCreate", "UserResponse", "Token",
    "CourseCreate", "CourseResponse",
    "ResourceMetadata", "ResourceResponse", "ResourceList",
    "ResourceRequestCreate", "ResourceRequestResponse",
]
