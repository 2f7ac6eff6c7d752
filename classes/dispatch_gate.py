# classes/dispatch_gate.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from classes import messages
from classes.cache_service import DispatchCache
from classes.draft_models import Draft
from classes.errors import DispatchError, DraftIncompleteError
from classes.settings import area_group_id

logger = logging.getLogger("vicebot_backend")


@dataclass
class DispatchResult:
    ticket_id: str
    folio: str
    group_id: Optional[str]
    notified: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"ticket_id": self.ticket_id, "folio": self.folio, "group_id": self.group_id, "notified": self.notified}


class DispatchGate:
    """
    The only way a Draft becomes a Ticket.
    - incomplete drafts raise DraftIncompleteError (nothing is written)
    - persistence failures raise DispatchError (the caller keeps the draft)
    - on success the team group is notified and the dispatch is cached
    """

    def __init__(self, repository, channel, dispatch_cache: DispatchCache, catalog=None):
        self.repository = repository
        self.channel = channel
        self.dispatch_cache = dispatch_cache
        self.catalog = catalog

    @staticmethod
    def validate(draft: Optional[Draft]) -> List[str]:
        if draft is None:
            return ["description", "place", "area"]
        return draft.missing_fields()

    def dispatch(self, draft: Draft, *, requester_chat_id: str) -> DispatchResult:
        missing = self.validate(draft)
        if missing:
            raise DraftIncompleteError(missing)

        try:
            created = self.repository.create_ticket(draft, requester_chat_id=requester_chat_id)
        except DispatchError:
            raise
        except SQLAlchemyError as e:
            raise DispatchError(f"Could not persist ticket: {e}") from e

        group_id = area_group_id(draft.area_code)
        result = DispatchResult(ticket_id=created["id"], folio=created["folio"], group_id=group_id)

        if draft.place_freeform and self.catalog is not None:
            self.catalog.add_place(draft.place)

        if group_id:
            self.dispatch_cache.record_dispatch(group_id, result.ticket_id, result.folio, requester_chat_id)
            try:
                self.channel.send_text(group_id, messages.team_notification(result.folio, draft))
            except SQLAlchemyError as e:
                # The ticket exists; a retry would duplicate it.
                logger.error(f"Ticket {result.folio} persisted but team notification failed: {e}")
                result.notified = False
        else:
            logger.warning(f"No group configured for area {draft.area_code}; {result.folio} not announced")
            result.notified = False

        logger.info(f"Dispatched {result.folio} ({draft.area_code}) for chat {requester_chat_id}")
        return result
