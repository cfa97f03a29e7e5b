"""Helpers for reading query-string arguments."""
from datetime import datetime
from typing import Optional, Tuple

from flask import current_app

from retailpos.exceptions import ValidationError


def parse_pagination(args) -> Tuple[int, int]:
    """page >= 1, 1 <= limit <= MAX_PAGE_SIZE."""
    default_limit = current_app.config.get('DEFAULT_PAGE_SIZE', 20)
    max_limit = current_app.config.get('MAX_PAGE_SIZE', 100)
    try:
        page = int(args.get('page', 1))
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        raise ValidationError('page and limit must be integers')
    return max(page, 1), min(max(limit, 1), max_limit)


def parse_date_arg(args, name: str) -> Optional[datetime]:
    """ISO-8601 date or datetime, None when absent."""
    raw = args.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f'{name} must be an ISO-8601 date')


def pagination_meta(page: int, limit: int, total: int) -> dict:
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'totalPages': (total + limit - 1) // limit if limit else 0,
    }
