"""Business services, built per request around the selected store."""
from __future__ import annotations

from dataclasses import dataclass

from safereport.services.admin_requests import AdminRequestService
from safereport.services.chat import MessagingService, RoomRegistry
from safereport.services.classifier import KeywordClassifier
from safereport.services.notifications import NotificationService
from safereport.services.reports import ReportService
from safereport.store.base import Store


@dataclass
class Services:
    store: Store
    notifications: NotificationService
    reports: ReportService
    rooms: RoomRegistry
    messaging: MessagingService
    admin_requests: AdminRequestService


def build_services(store: Store, hub=None, classifier=None) -> Services:
    notifications = NotificationService(store)
    return Services(
        store=store,
        notifications=notifications,
        reports=ReportService(store, classifier, notifications, hub),
        rooms=RoomRegistry(store),
        messaging=MessagingService(store, notifications, hub),
        admin_requests=AdminRequestService(store, notifications),
    )


__all__ = ["Services", "build_services", "KeywordClassifier"]
