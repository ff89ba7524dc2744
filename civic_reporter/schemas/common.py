from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


# Response envelope shared by every endpoint
class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    pages: int
