# shiftintel_api/common/paging.py
from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100


def page_limit(max_size: int = MAX_SIZE):
    """?page=&size= with bad values falling back to the defaults."""
    page = request.args.get("page", DEFAULT_PAGE, type=int) or DEFAULT_PAGE
    size = request.args.get("size", DEFAULT_SIZE, type=int) or DEFAULT_SIZE
    return max(page, 1), max(1, min(size, max_size))


def as_bool(raw, default=False) -> bool:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("true", "1", "yes", "on")
