import logging
from typing import Any, NamedTuple, Optional

import requests

from fhirsubmission.errors import TransportError

logger = logging.getLogger(__name__)

ENDPOINT_QUERY = '_format=json&_pretty=true&_summary=true'
JSON_HEADERS = {'Content-Type': 'application/json'}


class TransportResponse(NamedTuple):
    status_code: int
    body: Any
    location: Optional[str] = None


def endpoint(base_url, kind):
    return f'{base_url.rstrip("/")}/{kind.value}?{ENDPOINT_QUERY}'


class FhirTransport:
    """
    Posts one resource per call and hands back the status, the decoded body
    and the Location header. Any status is returned as is; only failures to
    reach the server raise.
    """

    def __init__(self, session=None, timeout=30.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, document, url) -> TransportResponse:
        try:
            r = self.session.post(
                url,
                json=document,
                headers=JSON_HEADERS,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransportError(url, e) from e

        try:
            body = r.json()
        except ValueError:
            logger.debug('Non-JSON body from %s (status %s)', url, r.status_code)
            body = None

        location = r.headers.get('Location') or r.headers.get('Content-Location')
        return TransportResponse(r.status_code, body, location)

    def __call__(self, document, url):
        return self.send(document, url)

    def close(self):
        self.session.close()
