"""
Practice Operations Services Module

Business logic for assignments, training and notifications.
"""

from app.services.assignment_service import AssignmentService
from app.services.eta_service import EtaService
from app.services.notification_service import NotificationService
from app.services.training_service import TrainingService

__all__ = [
    "AssignmentService",
    "EtaService",
    "NotificationService",
    "TrainingService",
]
