"""HTTP client posting registrations to the registration endpoint as JSON."""
import logging
import re
from urllib.parse import urljoin

import requests

from config import Config

logger = logging.getLogger(__name__)

CSRF_META_RE = re.compile(r'<meta\s+name="csrf-token"\s+content="([^"]+)"')


class RegistrationClient:
    def __init__(self, base_url, session=None, timeout=None):
        self.base_url = base_url
        # The session keeps the cookie the CSRF token is bound to
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout if timeout is not None else Config.SUBMIT_TIMEOUT

    def fetch_csrf_token(self):
        """Load the form page and read the token from its csrf-token meta tag."""
        response = self.session.get(urljoin(self.base_url, '/'), timeout=self.timeout)
        response.raise_for_status()
        match = CSRF_META_RE.search(response.text)
        return match.group(1) if match else ''

    def submit(self, submission):
        """POST the submission and return the decoded JSON body.

        Error statuses still carry a JSON body (field errors come back as 400),
        so the status code is not raised on. Transport errors and undecodable
        bodies propagate to the caller.
        """
        headers = {
            'X-CSRFToken': submission.csrf_token,
            'X-Requested-With': 'XMLHttpRequest',
        }
        response = self.session.post(
            urljoin(self.base_url, '/'),
            json=submission.to_payload(),
            headers=headers,
            timeout=self.timeout,
        )
        logger.info("Registration submitted, server answered %s", response.status_code)
        return response.json()
