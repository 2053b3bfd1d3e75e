"""Messaging bounded context — notification delivery and preference resolution.

Decides which channels may carry a notification for each recipient by
combining administrator channel policies, per-user preferences and quiet
hours. Persists in-app notification records, fans push delivery out to
every registered device token and prunes tokens the push gateway reports
as permanently invalid.
"""

import structlog
from protean.domain import Domain

from messaging.utils.logging import configure_logging

configure_logging()

messaging = Domain(name="messaging")

logger = structlog.get_logger(__name__)
