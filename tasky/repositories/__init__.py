from typing import Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId


def to_object_id(value) -> Optional[PydanticObjectId]:
    """Parse an id from a path or token; None when it is not a valid ObjectId."""
    if value is None:
        return None
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        return None
