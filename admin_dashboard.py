"""
Admin dashboard state: registration snapshot, counters and pending confirmations.

The dashboard never changes a record locally. Confirm and delete requests are
handed to ``dispatch`` as Action objects; the resulting full-page round trip
delivers a fresh snapshot.

Deleting one row goes through a per-row modal, deleting everything through an
inline confirmation block. The two paradigms differ on purpose and are kept
apart here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from registration_form import PersonEntry

logger = logging.getLogger(__name__)

BULK_IDLE = 'idle'
BULK_CONFIRMING = 'confirming'
BULK_SUBMITTED = 'submitted'

ACTION_PATHS = {
    'confirm': '/confirm-mail/{id}',
    'delete': '/delete-entry/{id}',
    'delete_all': '/delete-all-entries',
}


@dataclass
class RegistrationRecord:
    id: int
    created_at: datetime
    persons: List[PersonEntry] = field(default_factory=list)
    contact_firstname: str = ''
    contact_lastname: str = ''
    phone_number: str = ''
    email: str = ''
    confirmed: bool = False

    @property
    def contact_name(self):
        return f'{self.contact_firstname} {self.contact_lastname}'.strip()


@dataclass(frozen=True)
class DashboardStats:
    total_registrations: int = 0
    confirmed_registrations: int = 0
    total_persons: int = 0


@dataclass(frozen=True)
class Action:
    name: str
    csrf_token: str
    registration_id: Optional[int] = None

    @property
    def path(self):
        return ACTION_PATHS[self.name].format(id=self.registration_id)

    @property
    def form(self):
        return {'csrf_token': self.csrf_token}


class DashboardState:
    def __init__(self, registrations, stats, csrf_token, dispatch: Optional[Callable] = None):
        self.registrations: List[RegistrationRecord] = list(registrations)
        self.stats = stats
        self.csrf_token = csrf_token
        self.dispatched: List[Action] = []
        self.dispatch = dispatch if dispatch is not None else self.dispatched.append
        self.open_modals: Set[int] = set()
        self.bulk_delete = BULK_IDLE
        self._by_id: Dict[int, RegistrationRecord] = {r.id: r for r in self.registrations}

    @classmethod
    def from_query(cls, registrations, stats, csrf_token, args):
        """Restore modal/toggle state carried in the dashboard URL (a MultiDict)."""
        state = cls(registrations, stats, csrf_token)
        delete_id = args.get('confirm_delete', type=int)
        if delete_id in state._by_id:
            state.request_delete(delete_id)
        if args.get('confirm_delete_all'):
            state.request_delete_all()
        return state

    @property
    def is_empty(self):
        return not self.registrations

    def record(self, registration_id):
        return self._by_id[registration_id]

    def action(self, name, registration_id=None):
        return Action(name, self.csrf_token, registration_id)

    def _dispatch(self, action):
        logger.info("Dispatching %s to %s", action.name, action.path)
        self.dispatch(action)
        return action

    # -- confirm ----------------------------------------------------------

    def can_confirm(self, registration_id):
        return not self.record(registration_id).confirmed

    def click_confirm(self, registration_id):
        if not self.can_confirm(registration_id):
            return None
        return self._dispatch(self.action('confirm', registration_id))

    # -- single delete (modal) --------------------------------------------

    def request_delete(self, registration_id):
        self.record(registration_id)
        self.open_modals.add(registration_id)

    def cancel_delete(self, registration_id):
        self.open_modals.discard(registration_id)

    def is_modal_open(self, registration_id):
        return registration_id in self.open_modals

    def confirm_delete(self, registration_id):
        if registration_id not in self.open_modals:
            return None
        self.open_modals.discard(registration_id)
        return self._dispatch(self.action('delete', registration_id))

    # -- bulk delete (inline block) ---------------------------------------

    def request_delete_all(self):
        if self.bulk_delete == BULK_IDLE:
            self.bulk_delete = BULK_CONFIRMING

    def cancel_delete_all(self):
        if self.bulk_delete == BULK_CONFIRMING:
            self.bulk_delete = BULK_IDLE

    def confirm_delete_all(self):
        if self.bulk_delete != BULK_CONFIRMING:
            return None
        self.bulk_delete = BULK_SUBMITTED
        return self._dispatch(self.action('delete_all'))
