from pydantic import BaseModel


class BookmarkToggleResponse(BaseModel):
    resource_id: int
    bookmarked: bool
