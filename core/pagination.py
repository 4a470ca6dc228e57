import math

from django.core.paginator import EmptyPage
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class PageLimitPagination(PageNumberPagination):
    """
    `?page=N&limit=M` pagination.

    Responses keep the list under a resource-specific key (`results_key`,
    set by the view) alongside `total`, `total_pages` and `current_page`.
    A page past the end is an empty list, not a 404.
    """

    page_size = 20
    page_size_query_param = 'limit'
    max_page_size = 100
    results_key = 'results'

    def paginate_queryset(self, queryset, request, view=None):
        self.request = request
        self.per_page = self.get_page_size(request)
        paginator = self.django_paginator_class(queryset, self.per_page)
        self.total = paginator.count

        try:
            self.current_page = max(int(request.query_params.get(self.page_query_param, 1)), 1)
        except (TypeError, ValueError):
            self.current_page = 1

        try:
            self.page = paginator.page(self.current_page)
        except EmptyPage:
            self.page = None
            return []
        return list(self.page)

    def get_paginated_response(self, data):
        return Response({
            self.results_key: data,
            'total': self.total,
            'total_pages': math.ceil(self.total / self.per_page) if self.per_page else 0,
            'current_page': self.current_page,
        })


def paginate(view, queryset, serializer_class, results_key, page_size=None):
    """Paginate `queryset` for an APIView and return the Response."""
    paginator = PageLimitPagination()
    paginator.results_key = results_key
    if page_size:
        paginator.page_size = page_size
    page = paginator.paginate_queryset(queryset, view.request, view=view)
    serializer = serializer_class(page, many=True, context={'request': view.request})
    return paginator.get_paginated_response(serializer.data)
