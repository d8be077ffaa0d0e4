"""
State of one in-progress registration form.

The controller holds an ordered list of PersonEntry objects plus the contact
fields. A person's number (its "Person N" label and the ``_N`` suffix of its
field names) is derived from its position, so adding and removing rows never
needs renumbering bookkeeping. The field schema below both renders the form
(see ``templates/_form.html``) and parses submitted data back.
"""
from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

import requests

from club_matcher import match_club
from data.clubs import CLUB_PLACEHOLDER, clubs
from flash_messages import FlashBoard
from validation import validate_fields

logger = logging.getLogger(__name__)

REDIRECT_DELAY = 3.0
CONFIRMATION_URL = '/confirmation'

MSG_INVALID = '❌ Bitte überprüfen Sie Ihre Eingaben.'
MSG_NO_PERSONS = '❌ Bitte fügen Sie mindestens eine Person hinzu.'
MSG_NO_CSRF = '❌ CSRF-Token fehlt. Bitte laden Sie die Seite neu.'
MSG_SUCCESS = '✅ Anmeldung erfolgreich! Sie werden weitergeleitet.'
MSG_FAILED = '❌ Fehler bei der Anmeldung: {}'
MSG_TIMEOUT = '❌ Zeitüberschreitung beim Absenden. Bitte versuchen Sie es erneut.'
MSG_SEND_ERROR = '❌ Fehler beim Absenden: {}'


@dataclass(frozen=True)
class FormField:
    key: str
    label: str
    input_type: str = 'text'
    placeholder: str = ''
    choices: Tuple[str, ...] = ()


PERSON_FIELDS = (
    FormField('person_firstname', 'Vorname', placeholder='Vorname'),
    FormField('person_lastname', 'Nachname', placeholder='Nachname'),
    FormField('birthdate', 'Geburtsdatum', input_type='date'),
    FormField('club_membership', 'Vereinsmitgliedschaft', input_type='select',
              placeholder=CLUB_PLACEHOLDER, choices=tuple(clubs)),
)

CONTACT_FIELDS = (
    FormField('contact_firstname', 'Vorname', placeholder='Vorname'),
    FormField('contact_lastname', 'Nachname', placeholder='Nachname'),
    FormField('phone_number', 'Telefonnummer', input_type='tel', placeholder='0711-1234567'),
    FormField('email', 'E-Mail', input_type='email', placeholder='name@example.de'),
)

PERSON_KEYS = tuple(f.key for f in PERSON_FIELDS)
CONTACT_KEYS = tuple(f.key for f in CONTACT_FIELDS)

_PERSON_NAME_RE = re.compile(r'^({})_(\d+)$'.format('|'.join(PERSON_KEYS)))


def field_name(key, index):
    return f'{key}_{index}'


def parse_field_name(name):
    """Split ``person_firstname_3`` into ``('person_firstname', 3)``."""
    match = _PERSON_NAME_RE.match(name)
    if not match:
        return None
    return match.group(1), int(match.group(2))


class SubmitResult(enum.Enum):
    INVALID = 'invalid'
    REJECTED = 'rejected'
    BUSY = 'busy'
    FIELD_ERRORS = 'field_errors'
    SUCCESS = 'success'
    FAILED = 'failed'


@dataclass
class PersonEntry:
    person_firstname: str = ''
    person_lastname: str = ''
    birthdate: str = ''
    club_membership: str = ''
    errors: Dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_mapping(cls, data):
        return cls(**{key: str(data.get(key) or '') for key in PERSON_KEYS})

    def cleaned(self):
        return PersonEntry(
            person_firstname=self.person_firstname.strip(),
            person_lastname=self.person_lastname.strip(),
            birthdate=self.birthdate.strip(),
            club_membership=self.club_membership.strip(),
        )

    def is_complete(self):
        return all(getattr(self, key).strip() for key in PERSON_KEYS)

    def to_dict(self):
        return {key: getattr(self, key) for key in PERSON_KEYS}


@dataclass(frozen=True)
class RegistrationSubmission:
    csrf_token: str
    persons: Tuple[PersonEntry, ...]
    contact_firstname: str
    contact_lastname: str
    phone_number: str
    email: str

    def to_payload(self):
        return {
            'csrf_token': self.csrf_token,
            'persons': [person.to_dict() for person in self.persons],
            'contact_firstname': self.contact_firstname,
            'contact_lastname': self.contact_lastname,
            'phone_number': self.phone_number,
            'email': self.email,
        }


class RegistrationFormController:
    def __init__(self, csrf_token='', flashes=None, today=date.today, persons=None):
        self.csrf_token = csrf_token or ''
        self.flashes = flashes if flashes is not None else FlashBoard()
        self.today = today
        self.persons: List[PersonEntry] = list(persons) if persons is not None else [PersonEntry()]
        self.contact: Dict[str, str] = dict.fromkeys(CONTACT_KEYS, '')
        self.contact_errors: Dict[str, str] = {}
        self.focus: Optional[str] = None
        self.submitting = False
        self.location: Optional[str] = None

    # -- building from submitted data -------------------------------------

    @classmethod
    def from_form(cls, form, **kwargs):
        """Rebuild the form from flat posted fields (``person_firstname_2`` ...).

        Person indices are ordered numerically and renumbered from 1, so gaps
        left by removed rows disappear.
        """
        rows: Dict[int, Dict[str, str]] = {}
        for name in form.keys():
            parsed = parse_field_name(name)
            if parsed:
                key, index = parsed
                rows.setdefault(index, {})[key] = form.get(name, '')
        persons = [PersonEntry.from_mapping(rows[index]) for index in sorted(rows)]
        controller = cls(csrf_token=form.get('csrf_token', ''), persons=persons, **kwargs)
        for key in CONTACT_KEYS:
            controller.contact[key] = form.get(key, '')
        return controller

    @classmethod
    def from_payload(cls, payload, **kwargs):
        """Rebuild the form from the JSON registration body."""
        persons = []
        for item in payload.get('persons') or []:
            if isinstance(item, dict):
                person = PersonEntry.from_mapping(item)
                person.club_membership = match_club(person.club_membership)
                persons.append(person)
        controller = cls(csrf_token=str(payload.get('csrf_token') or ''), persons=persons, **kwargs)
        for key in CONTACT_KEYS:
            controller.contact[key] = str(payload.get(key) or '')
        return controller

    # -- person list -------------------------------------------------------

    def add_person(self):
        person = PersonEntry()
        self.persons.append(person)
        return len(self.persons)

    def remove_person(self, index):
        if not 1 <= index <= len(self.persons):
            raise IndexError(f"No person {index} in form")
        del self.persons[index - 1]

    def person_rows(self):
        """Yield ``(index, label, person)`` in display order."""
        for index, person in enumerate(self.persons, start=1):
            yield index, f'Person {index}', person

    # -- field access -----------------------------------------------------

    def fields(self):
        """Yield ``(field_name, key, value)`` for every field in document order."""
        for index, _, person in self.person_rows():
            for key in PERSON_KEYS:
                yield field_name(key, index), key, getattr(person, key)
        for key in CONTACT_KEYS:
            yield key, key, self.contact[key]

    def _locate(self, name):
        parsed = parse_field_name(name)
        if not parsed or not 1 <= parsed[1] <= len(self.persons):
            raise KeyError(name)
        return self.persons[parsed[1] - 1], parsed[0]

    def value(self, name):
        if name in self.contact:
            return self.contact[name]
        person, key = self._locate(name)
        return getattr(person, key)

    def set_value(self, name, value):
        if name in self.contact:
            self.contact[name] = value
            return
        person, key = self._locate(name)
        setattr(person, key, value)

    @property
    def errors(self):
        """Current field errors keyed by field name, in document order."""
        errors = {}
        for index, _, person in self.person_rows():
            for key in PERSON_KEYS:
                if key in person.errors:
                    errors[field_name(key, index)] = person.errors[key]
        for key in CONTACT_KEYS:
            if key in self.contact_errors:
                errors[key] = self.contact_errors[key]
        return errors

    def error_for(self, name):
        return self.errors.get(name)

    def clear_errors(self):
        for person in self.persons:
            person.errors.clear()
        self.contact_errors.clear()
        self.focus = None

    def annotate(self, name, message):
        """Attach an inline error to a field; unknown names are ignored."""
        if name in self.contact:
            self.contact_errors[name] = message
        else:
            try:
                person, key = self._locate(name)
            except KeyError:
                logger.debug("Ignoring error for unknown field %s", name)
                return False
            person.errors[key] = message
        if self.focus is None:
            self.focus = name
        return True

    # -- validation and submission ----------------------------------------

    def validate(self):
        self.clear_errors()
        for name, message in validate_fields(self.fields(), self.today()).items():
            self.annotate(name, message)
        if self.focus is not None:
            self.flashes.add(MSG_INVALID, 'error')
            return False
        return True

    def collect_persons(self):
        return [person.cleaned() for person in self.persons if person.is_complete()]

    def build_submission(self, require_csrf=True):
        persons = self.collect_persons()
        if not persons:
            self.flashes.add(MSG_NO_PERSONS, 'error')
            return None

        csrf_token = self.csrf_token.strip()
        if require_csrf and not csrf_token:
            self.flashes.add(MSG_NO_CSRF, 'error')
            return None

        return RegistrationSubmission(
            csrf_token=csrf_token,
            persons=tuple(persons),
            contact_firstname=self.contact['contact_firstname'].strip(),
            contact_lastname=self.contact['contact_lastname'].strip(),
            phone_number=self.contact['phone_number'].strip(),
            email=self.contact['email'].strip(),
        )

    def submit(self, client):
        if self.submitting:
            logger.info("Submission already in flight, ignoring")
            return SubmitResult.BUSY
        if not self.validate():
            return SubmitResult.INVALID
        submission = self.build_submission()
        if submission is None:
            return SubmitResult.REJECTED

        self.submitting = True
        try:
            data = client.submit(submission)
        except requests.Timeout:
            logger.warning("Registration submission timed out")
            self.flashes.add(MSG_TIMEOUT, 'error')
            return SubmitResult.FAILED
        except (requests.RequestException, ValueError) as e:
            logger.error("Submission error: %s", e)
            self.flashes.add(MSG_SEND_ERROR.format(e), 'error')
            return SubmitResult.FAILED
        finally:
            self.submitting = False
        return self.handle_response(data)

    def handle_response(self, data):
        if not isinstance(data, dict):
            self.flashes.add(MSG_SEND_ERROR.format('Unerwartete Antwort'), 'error')
            return SubmitResult.FAILED

        errors = data.get('errors')
        if errors:
            if not isinstance(errors, dict):
                logger.error("Unexpected errors payload: %r", errors)
                self.flashes.add(MSG_SEND_ERROR.format('Unerwartete Antwort'), 'error')
                return SubmitResult.FAILED
            self.clear_errors()
            for name, messages in errors.items():
                # a bare string is a single message
                if isinstance(messages, str):
                    messages = [messages]
                if isinstance(messages, (list, tuple)) and messages:
                    self.annotate(name, str(messages[0]))
            return SubmitResult.FIELD_ERRORS

        if data.get('success'):
            self.flashes.add(MSG_SUCCESS, 'success')
            self.flashes.timeline.call_later(REDIRECT_DELAY, self.navigate, CONFIRMATION_URL)
            return SubmitResult.SUCCESS

        self.flashes.add(MSG_FAILED.format(data.get('error')), 'error')
        return SubmitResult.FAILED

    def navigate(self, url):
        self.location = url
