from rest_framework.pagination import PageNumberPagination


class StandardPagination(PageNumberPagination):
    """Page-number pagination; clients pick the page size with ``per_page``."""

    page_size = 12
    page_size_query_param = 'per_page'
    max_page_size = 100
