"""
Unit tests: registration form state (registration_form.py).

Covers the person list (add/remove/renumber), parsing posted data, validation
annotation and collecting the submission. Network behaviour lives in
test_submission.py.
"""
import random
from datetime import date

import pytest
from werkzeug.datastructures import MultiDict

from conftest import VALID_CONTACT, VALID_PERSON, fill
from registration_form import (
    MSG_INVALID, MSG_NO_CSRF, MSG_NO_PERSONS, PersonEntry,
    RegistrationFormController, field_name, parse_field_name,
)


def names(controller):
    return [name for name, _, _ in controller.fields()]


class TestPersonList:
    def test_starts_with_one_person(self, make_controller):
        controller = make_controller()
        assert [label for _, label, _ in controller.person_rows()] == ['Person 1']

    def test_add_appends_next_index(self, make_controller):
        controller = make_controller()
        assert controller.add_person() == 2
        assert 'person_firstname_2' in names(controller)

    def test_remove_renumbers_remaining(self, make_controller):
        controller = make_controller()
        controller.add_person()
        controller.add_person()
        for index, name in enumerate(['Anna', 'Bernd', 'Carla'], start=1):
            controller.set_value(field_name('person_firstname', index), name)

        controller.remove_person(2)

        rows = list(controller.person_rows())
        assert [(i, label, p.person_firstname) for i, label, p in rows] == [
            (1, 'Person 1', 'Anna'),
            (2, 'Person 2', 'Carla'),
        ]
        assert controller.value('person_firstname_2') == 'Carla'
        with pytest.raises(KeyError):
            controller.value('person_firstname_3')

    def test_indices_stay_contiguous_under_random_edits(self, make_controller):
        rng = random.Random(1922)
        controller = make_controller()
        for _ in range(200):
            if controller.persons and rng.random() < 0.45:
                controller.remove_person(rng.randint(1, len(controller.persons)))
            else:
                controller.add_person()
            indices = [index for index, _, _ in controller.person_rows()]
            assert indices == list(range(1, len(controller.persons) + 1))
            suffixes = sorted({parse_field_name(n)[1] for n in names(controller) if parse_field_name(n)})
            assert suffixes == indices

    def test_remove_unknown_index_raises(self, make_controller):
        controller = make_controller()
        with pytest.raises(IndexError):
            controller.remove_person(2)
        with pytest.raises(IndexError):
            controller.remove_person(0)

    def test_errors_move_with_their_person(self, make_controller):
        controller = make_controller()
        controller.add_person()
        controller.annotate('person_lastname_2', 'Mindestens 2 Zeichen erforderlich')
        controller.remove_person(1)
        assert controller.errors == {'person_lastname_1': 'Mindestens 2 Zeichen erforderlich'}


class TestFromForm:
    def test_sparse_indices_are_renumbered(self):
        form = MultiDict({
            'csrf_token': 'abc',
            'person_firstname_5': 'Erik',
            'person_lastname_5': 'Ernst',
            'person_firstname_2': 'Berta',
            'email': 'x@y.de',
        })
        controller = RegistrationFormController.from_form(form)
        assert controller.csrf_token == 'abc'
        assert [p.person_firstname for p in controller.persons] == ['Berta', 'Erik']
        assert controller.value('person_lastname_2') == 'Ernst'
        assert controller.contact['email'] == 'x@y.de'

    def test_no_person_fields_means_no_persons(self):
        controller = RegistrationFormController.from_form(MultiDict(VALID_CONTACT))
        assert controller.persons == []

    def test_payload_normalises_free_text_club(self):
        controller = RegistrationFormController.from_payload({
            'csrf_token': 't',
            'persons': [dict(VALID_PERSON, club_membership='TSV Bitzfeld 1922'), 'junk'],
            **VALID_CONTACT,
        })
        assert len(controller.persons) == 1
        assert controller.persons[0].club_membership == 'TSV Bitzfeld 1922 e.V.'


class TestValidate:
    def test_valid_form_passes_without_flash(self, make_controller, flashes):
        controller = fill(make_controller())
        assert controller.validate() is True
        assert controller.errors == {}
        assert flashes.messages() == []

    def test_all_invalid_fields_annotated_at_once(self, make_controller, flashes):
        controller = fill(make_controller())
        controller.set_value('person_firstname_1', 'A')
        controller.set_value('phone_number', '123-456')
        controller.set_value('email', '')

        assert controller.validate() is False
        assert controller.errors == {
            'person_firstname_1': 'Mindestens 2 Zeichen erforderlich',
            'phone_number': 'Ungültiges Telefonnummerformat',
            'email': 'Dieses Feld ist erforderlich',
        }
        assert controller.focus == 'person_firstname_1'
        assert [m.text for m in flashes.messages('error')] == [MSG_INVALID]

    def test_previous_errors_cleared_before_each_pass(self, make_controller):
        controller = fill(make_controller())
        controller.set_value('email', 'kaputt')
        controller.validate()
        assert 'email' in controller.errors

        controller.set_value('email', 'heile@example.de')
        assert controller.validate() is True
        assert controller.errors == {}
        assert controller.focus is None

    def test_focus_follows_document_order(self, make_controller):
        controller = fill(make_controller())
        controller.add_person()
        fill(controller)
        controller.set_value('email', 'kaputt')
        controller.set_value('birthdate_2', '2999-01-01')
        controller.validate()
        assert controller.focus == 'birthdate_2'
        assert list(controller.errors) == ['birthdate_2', 'email']

    def test_validation_uses_injected_today(self, make_controller):
        controller = fill(make_controller(today=lambda: date(2000, 1, 1)))
        assert controller.validate() is False
        assert controller.errors['birthdate_1'] == 'Geburtsdatum kann nicht in der Zukunft liegen'


class TestCollect:
    def test_incomplete_entries_skipped(self, make_controller):
        controller = fill(make_controller())
        controller.persons.append(PersonEntry(person_firstname='Nur'))
        assert controller.collect_persons() == [PersonEntry(**VALID_PERSON)]

    def test_values_trimmed(self, make_controller):
        controller = make_controller(persons=[PersonEntry(**dict(VALID_PERSON, person_firstname='  Anna '))])
        assert controller.collect_persons()[0].person_firstname == 'Anna'

    def test_no_persons_rejected_with_flash(self, make_controller, flashes):
        controller = fill(make_controller(persons=[]))
        assert controller.collect_persons() == []
        assert controller.build_submission() is None
        assert [m.text for m in flashes.messages()] == [MSG_NO_PERSONS]

    def test_missing_csrf_token_rejected_with_flash(self, make_controller, flashes):
        controller = fill(make_controller(csrf_token='  '))
        assert controller.build_submission() is None
        assert [m.text for m in flashes.messages()] == [MSG_NO_CSRF]

    def test_submission_payload_shape(self, make_controller):
        submission = fill(make_controller()).build_submission()
        assert submission.to_payload() == {
            'csrf_token': 'token',
            'persons': [VALID_PERSON],
            **VALID_CONTACT,
        }
