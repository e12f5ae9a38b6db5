"""
Pagination that wraps list pages in the API envelope and lets the client
override page_size via query param (the billing screens list every apartment).
"""
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class EnvelopePageNumberPagination(PageNumberPagination):
    """PageNumberPagination that accepts page_size from query params."""
    page_size = 25
    page_size_query_param = 'page_size'
    max_page_size = 10000

    def get_paginated_response(self, data):
        return Response({
            'success': True,
            'count': self.page.paginator.count,
            'next': self.get_next_link(),
            'previous': self.get_previous_link(),
            'data': data,
        })

    def get_paginated_response_schema(self, schema):
        paginated = super().get_paginated_response_schema(schema)
        properties = paginated['properties']
        properties['success'] = {'type': 'boolean', 'example': True}
        properties['data'] = properties.pop('results')
        return paginated
