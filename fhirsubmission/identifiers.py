import uuid

from fhirsubmission.references import Reference

URN_UUID_PREFIX = 'urn:uuid:'


def new_reference():
    return Reference(f'{URN_UUID_PREFIX}{uuid.uuid4()}')
