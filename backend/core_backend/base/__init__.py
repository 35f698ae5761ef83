"""
Core backend base components.

Foundational view classes shared by the order, bill and payment APIs.
"""

from .viewsets import ReadOnlyBaseViewSet

__all__ = [
    'ReadOnlyBaseViewSet',
]
