import logging
import os


# Lightweight config that reads from environment variables.
# No database connections or mail servers are touched at import time.

class Config:
    # Secret key for Flask sessions and CSRF tokens. Set this in production.
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')

    # SQL Server connection string. When empty the local SQLite file is used:
    # 'DRIVER={ODBC Driver 17 for SQL Server};SERVER=<host>,<port>;DATABASE=<db>;UID=<user>;PWD=<pass>'
    SQL_CONNECTION_STRING = os.environ.get('SQL_CONNECTION_STRING', '')
    DATABASE_PATH = os.environ.get(
        'DATABASE_PATH',
        os.path.abspath(os.path.join(os.path.dirname(__file__), 'anmeldungen.db')),
    )

    # Password for the admin dashboard (override in env)
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', 'change-me')

    EVENT_NAME = os.environ.get('EVENT_NAME', 'Vereinsausflug')

    # Payment details shown on the registration page
    PAYPAL_URL = os.environ.get('PAYPAL_URL', 'https://paypal.me/pascalweibler?country.x=DE&locale.x=de_DE')
    BANK_ACCOUNT_HOLDER = os.environ.get('BANK_ACCOUNT_HOLDER', 'Pascal Weibler')
    BANK_IBAN = os.environ.get('BANK_IBAN', 'DE00 0000 0000 0000 0000 00')
    BANK_BIC = os.environ.get('BANK_BIC', 'XXXXDEXXXXX')

    # Flask-Mail
    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'localhost')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', '25'))
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'false').lower() == 'true'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'anmeldung@example.org')

    # Seconds before an API submission is abandoned
    SUBMIT_TIMEOUT = float(os.environ.get('SUBMIT_TIMEOUT', '10'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


def ensure_required_env_vars():
    """Call at startup to assert required vars are present in prod."""
    required = []
    if os.environ.get('FLASK_ENV') == 'production':
        required = ['SECRET_KEY', 'ADMIN_PASSWORD']

    missing = [v for v in required if not os.environ.get(v)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


def configure_logging(level=None):
    logging.basicConfig(
        level=level or Config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
