"""
API dependencies.

Route handlers receive components from the service container stored on
``app.state`` during startup.
"""

from fastapi import Request

from ..infrastructure.repositories import ProductRepository
from ..services.cache import CacheCoordinator
from ..services.container import ServiceContainer
from ..services.queues import JobQueue


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_coordinator(request: Request) -> CacheCoordinator:
    return get_container(request).coordinator


def get_queue(request: Request) -> JobQueue:
    return get_container(request).queue


def get_products(request: Request) -> ProductRepository:
    return get_container(request).products
