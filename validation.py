"""
Field validation shared by the registration form and the server.

The rules live on a WTForms form with one field per field key. Validators run
in order and the first message a field collects is the one shown for it.
Messages are German, matching the rest of the UI.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Dict, Iterable, Optional, Tuple

from wtforms import Form, StringField
from wtforms.validators import AnyOf, DataRequired, Length, Regexp, ValidationError

from data.clubs import clubs

REQUIRED_MESSAGE = 'Dieses Feld ist erforderlich'

# Letters including accented ones (À-ÿ covers ÄÖÜäöüß), spaces and hyphens
NAME_RE = re.compile(r"^[A-Za-zÀ-ÖØ-öø-ÿ\s-]+$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Area code of 4 digits with 7 or 8 digit number, or 5 digits with 6 or 7
PHONE_RE = re.compile(r"^(?:\d{4}[- ]?\d{7}|\d{4}[- ]?\d{8}|\d{5}[- ]?\d{6}|\d{5}[- ]?\d{7})$", re.ASCII)


def parse_date(value) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def strip(value):
    return value.strip() if isinstance(value, str) else value


class IsoDate:
    def __init__(self, message='Ungültiges Datum'):
        self.message = message

    def __call__(self, form, field):
        if parse_date(field.data) is None:
            raise ValidationError(self.message)


class NotInFuture:
    """Compares against ``form.today`` so callers can pin the date."""

    def __init__(self, message='Geburtsdatum kann nicht in der Zukunft liegen'):
        self.message = message

    def __call__(self, form, field):
        parsed = parse_date(field.data)
        if parsed is not None and parsed > form.today:
            raise ValidationError(self.message)


def name_validators():
    return [
        DataRequired(REQUIRED_MESSAGE),
        Length(min=2, message='Mindestens %(min)d Zeichen erforderlich'),
        Regexp(NAME_RE, message='Nur Buchstaben und Bindestriche erlaubt'),
    ]


class RegistrationFields(Form):
    person_firstname = StringField('Vorname', name_validators(), filters=[strip])
    person_lastname = StringField('Nachname', name_validators(), filters=[strip])
    birthdate = StringField('Geburtsdatum', [
        DataRequired(REQUIRED_MESSAGE),
        IsoDate(),
        NotInFuture(),
    ], filters=[strip])
    club_membership = StringField('Vereinsmitgliedschaft', [
        DataRequired(REQUIRED_MESSAGE),
        AnyOf(clubs, message='Bitte eine Option auswählen'),
    ], filters=[strip])
    contact_firstname = StringField('Vorname', name_validators(), filters=[strip])
    contact_lastname = StringField('Nachname', name_validators(), filters=[strip])
    phone_number = StringField('Telefonnummer', [
        DataRequired(REQUIRED_MESSAGE),
        Regexp(PHONE_RE, message='Ungültiges Telefonnummerformat'),
    ], filters=[strip])
    email = StringField('E-Mail', [
        DataRequired(REQUIRED_MESSAGE),
        Regexp(EMAIL_RE, message='Ungültige E-Mail-Adresse'),
    ], filters=[strip])

    def __init__(self, today=None, **kwargs):
        super().__init__(**kwargs)
        self.today = today or date.today()


def validate_value(key, value, today=None) -> Optional[str]:
    """Return the error message for one field value, or None if it is valid."""
    form = RegistrationFields(today=today, data={key: value or ''})
    field = form[key]
    if field.validate(form):
        return None
    return field.errors[0]


def validate_fields(fields: Iterable[Tuple[str, str, str]], today=None) -> Dict[str, str]:
    """
    Validate ``(field_name, key, value)`` triples.

    Returns every failing field name mapped to its message, in the order the
    fields were given, so the first entry is the first invalid field.
    """
    today = today or date.today()
    errors = {}
    for name, key, value in fields:
        message = validate_value(key, value, today)
        if message:
            errors[name] = message
    return errors
