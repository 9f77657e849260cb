# Integration Module
"""
Collaborators at the edge of the identity core: activity records and
outbound mail.
"""

from .activity import ActivityRecorder
from .mailer import EmailMessage, LoggingMailer, Mailer, MemoryMailer

__all__ = [
    'ActivityRecorder',
    'EmailMessage',
    'LoggingMailer',
    'Mailer',
    'MemoryMailer',
]
