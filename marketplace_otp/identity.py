# SPDX-License-Identifier: GPL-3.0-only
"""Identity resolution for verified phone numbers."""

import datetime
from abc import ABC, abstractmethod

from base_logger import get_logger
from marketplace_otp.db_models import Entity
from marketplace_otp.utils import generate_eid, hash_data

logger = get_logger(__name__)


class IdentityResolver(ABC):
    """Maps a verified destination to a stable identity reference."""

    @abstractmethod
    def resolve(self, destination: str) -> str:
        """Find or create the identity for a destination and return its id."""


class EntityIdentityResolver(IdentityResolver):
    """Finds or creates an :class:`Entity` keyed by the phone number hash.

    Every resolution stamps ``date_last_verified`` on the entity.
    """

    def __init__(self, clock=None):
        self.clock = clock or datetime.datetime.now

    def resolve(self, destination: str) -> str:
        phone_number_hash = hash_data(destination)
        now = self.clock()

        with Entity._meta.database.atomic():
            entity, created = Entity.get_or_create(
                phone_number_hash=phone_number_hash,
                defaults={
                    "eid": generate_eid(phone_number_hash),
                    "date_created": now,
                    "date_last_verified": now,
                },
            )
            if not created:
                Entity.update(date_last_verified=now).where(
                    Entity.eid == entity.eid
                ).execute()

        if created:
            logger.info("Entity created successfully")
        else:
            logger.debug("Entity found, last verification updated")
        return entity.eid
