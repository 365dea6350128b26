"""
Pagination classes for chat API.

This module provides cursor-based pagination for message history.

Cursor-based pagination advantages:
- Stable results while new messages are appended
- No offset calculation needed

Design Decisions:
    - Messages ordered by sequence (oldest first) for natural reading flow
    - The conversation directory is not paginated; it is bounded by the
      user's memberships and clients mirror it from the directory topic
"""

from rest_framework.pagination import CursorPagination


class MessageCursorPagination(CursorPagination):
    """
    Cursor pagination for message lists.

    Default: 50 messages per page
    Maximum: 100 messages per page

    Query parameters:
        cursor: Encoded cursor for position
        page_size: Number of messages (optional override)
    """

    page_size = 50
    max_page_size = 100
    page_size_query_param = "page_size"
    ordering = ("sequence",)
    cursor_query_param = "cursor"
