"""
References shared by submission and bundling.

A ``ReferenceTable`` maps ``(node, role)`` to the Reference assigned to it,
so the input tree itself is never written to. Renderers read from the table;
the submitter and the bundle assembler write to it.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fhir.resources.R4B import get_fhir_model_class

from fhirsubmission.errors import ResponseExtractionError

logger = logging.getLogger(__name__)

REFERENCE_KEY = 'reference'
HISTORY_SEGMENT = '/_history/'


@dataclass(frozen=True)
class Reference:
    value: str
    url: Optional[str] = None

    def as_link(self):
        return {REFERENCE_KEY: self.value}


class Role(Enum):
    SELF = 'self'
    SUBJECT = 'subject'
    SPECIMEN = 'specimen'
    RESULT = 'result'


class ReferenceTable:

    def __init__(self):
        self._references = {}
        self._lock = threading.Lock()

    def put(self, node, role: Role, reference: Reference):
        # a later value replaces the earlier one outright
        with self._lock:
            self._references[(node, role)] = reference

    def get(self, node, role: Role) -> Optional[Reference]:
        with self._lock:
            return self._references.get((node, role))

    def forget(self, *nodes):
        """Drop every role recorded for ``nodes``."""
        nodes = set(nodes)
        with self._lock:
            for key in [key for key in self._references if key[0] in nodes]:
                del self._references[key]

    def __len__(self):
        with self._lock:
            return len(self._references)


def link(document, key, reference: Reference):
    """
    Point ``document[key]`` at ``reference``. Whatever was there before is
    dropped, not merged.
    """
    document[key] = reference.as_link()
    return document


def reference_from_location(location):
    url = location.split('?', 1)[0].split(HISTORY_SEGMENT, 1)[0].rstrip('/')
    parts = url.split('/')
    if len(parts) < 2 or not parts[-1] or not parts[-2]:
        raise ResponseExtractionError(f'Cannot read a resource location from {location!r}')

    return Reference(f'{parts[-2]}/{parts[-1]}', url)


def extract_reference(response, base_url=None) -> Reference:
    """
    Turn a server response into the Reference of the resource it created.

    The Location header wins when the server sends one. Otherwise the body is
    parsed as a FHIR resource and its type and id are used.
    """
    if not 200 <= response.status_code < 300:
        raise ResponseExtractionError(
            f'Server answered {response.status_code}, no resource was created'
        )

    if response.location:
        return reference_from_location(response.location)

    body = response.body
    if not isinstance(body, dict) or 'resourceType' not in body:
        raise ResponseExtractionError('Response has neither a Location header nor a resource body')

    resource_type = body['resourceType']
    try:
        resource = get_fhir_model_class(resource_type).model_validate(body)
    except (ValueError, LookupError, TypeError) as e:
        raise ResponseExtractionError(f'Response body is not a valid {resource_type} resource') from e

    if not resource.id:
        raise ResponseExtractionError(f'{resource_type} in response has no id')

    value = f'{resource_type}/{resource.id}'
    url = f'{base_url.rstrip("/")}/{value}' if base_url else None
    logger.debug('Server assigned %s', value)
    return Reference(value, url)
