from __future__ import annotations

from django.conf import settings
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    """
    ?page=N&page_size=M, with the default size taken from HMS_PAGE_SIZE.
    """
    page_size_query_param = "page_size"
    max_page_size = 200

    def get_page_size(self, request):
        self.page_size = int(getattr(settings, "HMS_PAGE_SIZE", 20))
        return super().get_page_size(request)


def paginate(request, rows, serializer_class, *, paginator: PageNumberPagination | None = None) -> Response:
    """
    Every list endpoint answers { count, next, previous, results }.
    `rows` may be a queryset or a plain list (selectors that group in Python).
    """
    p = paginator or DefaultPagination()
    page = p.paginate_queryset(rows, request)
    context = {"request": request}

    if page is None:
        return Response(serializer_class(rows, many=True, context=context).data)
    return p.get_paginated_response(serializer_class(page, many=True, context=context).data)
