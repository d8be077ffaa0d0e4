from io import BytesIO

import pandas as pd

COLUMNS = [
    'Anmeldung', 'Zeitstempel', 'Bestätigt',
    'Vorname', 'Nachname', 'Geburtsdatum', 'Verein',
    'Kontakt Vorname', 'Kontakt Nachname', 'Telefonnummer', 'E-Mail',
]


def registrations_frame(registrations):
    """One row per registered person, carrying the registration's contact data."""
    rows = []
    for record in registrations:
        for person in record.persons:
            rows.append([
                record.id,
                record.created_at.strftime('%d.%m.%Y %H:%M'),
                'Ja' if record.confirmed else 'Nein',
                person.person_firstname,
                person.person_lastname,
                person.birthdate,
                person.club_membership,
                record.contact_firstname,
                record.contact_lastname,
                record.phone_number,
                record.email,
            ])
    return pd.DataFrame(rows, columns=COLUMNS)


def export_registrations(registrations):
    buffer = BytesIO()
    registrations_frame(registrations).to_excel(buffer, index=False, sheet_name='Anmeldungen', engine='openpyxl')
    buffer.seek(0)
    return buffer
