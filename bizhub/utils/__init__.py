from .helpers import (
    serialize_mongo_doc,
    success_response,
    error_response,
    to_object_id,
)
from .logger import Logger

__all__ = [
    "serialize_mongo_doc",
    "success_response",
    "error_response",
    "to_object_id",
    "Logger",
]
