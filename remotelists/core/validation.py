import logging
import re
from typing import List, Optional, Union

from fastapi import HTTPException


logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')
ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')
MAX_FILTER_LENGTH = 1000


def validate_inputs(collection: Optional[str] = None, item_id: Optional[str] = None) -> None:
    if collection is not None and not NAME_PATTERN.match(collection):
        raise HTTPException(status_code=400, detail="Invalid collection name format")

    if item_id is not None and not ID_PATTERN.match(item_id):
        raise HTTPException(status_code=400, detail="Invalid item_id format")


def parse_item_id(item_id: str) -> Union[int, str]:
    validate_inputs(item_id=item_id)
    return int(item_id) if item_id.isdigit() else item_id


def parse_fields(fields: Optional[str]) -> Optional[List[str]]:
    if fields is None:
        return None
    names = [f.strip() for f in fields.split(",") if f.strip()]
    for name in names:
        if not NAME_PATTERN.match(name):
            raise HTTPException(status_code=400, detail=f"Invalid field name: {name}")
    return names


def validate_filter(expression: Optional[str]) -> None:
    if expression and len(expression) > MAX_FILTER_LENGTH:
        raise HTTPException(status_code=400, detail=f"Filter too long. Maximum length is {MAX_FILTER_LENGTH}")
