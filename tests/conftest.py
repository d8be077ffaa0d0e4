"""
Shared pytest fixtures.

Time-dependent code (flash dismissal, the post-submit redirect, birthdate
checks) runs against a fake clock and a fixed "today".
"""
from datetime import date

import pytest
import requests

from app import create_app
from config import Config
from data.database import Database
from flash_messages import FlashBoard, Timeline
from registration_form import RegistrationFormController

TODAY = date(2024, 6, 15)

VALID_PERSON = {
    'person_firstname': 'Anna',
    'person_lastname': 'Müller',
    'birthdate': '2010-05-01',
    'club_membership': 'TSV Bitzfeld 1922 e.V.',
}

VALID_CONTACT = {
    'contact_firstname': 'Jürgen',
    'contact_lastname': 'Müller',
    'phone_number': '0711-1234567',
    'email': 'juergen@example.de',
}


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, data, status_code=200):
        self.data = data
        self.status_code = status_code

    def json(self):
        if isinstance(self.data, Exception):
            raise self.data
        return self.data


class FakeSession:
    """Stands in for requests.Session; records every POST."""

    def __init__(self, response=None, error=None, on_post=None):
        self.response = response
        self.error = error
        self.on_post = on_post
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        if self.on_post:
            self.on_post()
        if self.error:
            raise self.error
        return self.response


def fill(controller, person=None, contact=None):
    person = person or VALID_PERSON
    contact = contact or VALID_CONTACT
    for index, _, entry in controller.person_rows():
        for key, value in person.items():
            setattr(entry, key, value)
    controller.contact.update(contact)
    return controller


def person_form(*first_names, **extra):
    """Flat form data for the HTML path, one person per first name."""
    data = dict(VALID_CONTACT)
    for index, name in enumerate(first_names, start=1):
        data.update({f'{key}_{index}': value for key, value in VALID_PERSON.items()})
        data[f'person_firstname_{index}'] = name
    data.update(extra)
    return data


def payload(**overrides):
    data = {'csrf_token': 'token', 'persons': [dict(VALID_PERSON)], **VALID_CONTACT}
    data.update(overrides)
    return data


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timeline(clock):
    return Timeline(clock)


@pytest.fixture
def flashes(timeline):
    return FlashBoard(timeline)


@pytest.fixture
def make_controller(flashes):
    def factory(**kwargs):
        kwargs.setdefault('csrf_token', 'token')
        kwargs.setdefault('today', lambda: TODAY)
        return RegistrationFormController(flashes=flashes, **kwargs)
    return factory


@pytest.fixture
def timeout_error():
    return requests.Timeout('read timed out')


@pytest.fixture
def test_config(tmp_path):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = 'test-secret'
        WTF_CSRF_ENABLED = False
        DATABASE_PATH = str(tmp_path / 'test.db')
        SQL_CONNECTION_STRING = ''
        ADMIN_PASSWORD = 'geheim'
        MAIL_SUPPRESS_SEND = True
        EVENT_NAME = 'Sommerfest'
    return TestConfig


@pytest.fixture
def app(test_config):
    app = create_app(test_config)
    yield app
    app.extensions['registration_db'].close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as sess:
        sess['is_admin'] = True
    return client


@pytest.fixture
def db(app):
    return app.extensions['registration_db']


@pytest.fixture
def standalone_db(tmp_path):
    database = Database(path=str(tmp_path / 'standalone.db'), connection_string='')
    yield database
    database.close()
