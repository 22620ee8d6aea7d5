"""
Dependency accessors

Services are built once in the application lifespan and kept on `app.state`;
route handlers reach them through these functions so tests can install their
own instances.
"""
from fastapi import Request

from iptv_catalog.services.library_service import ViewerLibrary
from iptv_catalog.services.network_events import NetworkEventSource
from iptv_catalog.services.refresh_orchestrator import RefreshOrchestrator
from iptv_catalog.services.scheduler_service import RevalidationScheduler


def get_orchestrator(request: Request) -> RefreshOrchestrator:
    return request.app.state.orchestrator


def get_library(request: Request) -> ViewerLibrary:
    return request.app.state.library


def get_network_events(request: Request) -> NetworkEventSource:
    return request.app.state.network_events


def get_scheduler(request: Request) -> RevalidationScheduler | None:
    return getattr(request.app.state, "scheduler", None)
