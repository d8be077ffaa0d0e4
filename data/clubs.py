CLUB_PLACEHOLDER = 'Bitte auswählen'

clubs = [
    'TSV Bitzfeld 1922 e.V.',
    'TSV Schwabbach 1947 e.V.',
]
