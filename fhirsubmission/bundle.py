"""
Offline counterpart of the submitter: one collection Bundle per subject,
every resource under a client-generated ``urn:uuid:`` reference.

Entries are laid out as

    Patient
    for each specimen:  Specimen, DiagnosticReport, Observation...

Links between entries sit on the entry itself (``subject``, ``specimen``)
next to a ``request`` descriptor, so the bundle can be replayed as a batch of
POSTs. The rendered ``resource`` payloads carry no generated token: the
reference table built per subject only hands out ``fullUrl`` tokens and fills
the entry links, and resources are rendered without it.

A node that does not make a valid resource is treated like an empty one and
becomes a placeholder or is skipped, per ``EmptyEntries``.
"""
import logging
from enum import Enum

from fhirsubmission.errors import RenderError
from fhirsubmission.identifiers import new_reference
from fhirsubmission.references import ReferenceTable, Role, link
from fhirsubmission.render import ResourceKind, render

logger = logging.getLogger(__name__)

BUNDLE_RESOURCE_TYPE = 'Bundle'
BUNDLE_TYPE = 'collection'
REQUEST_METHOD = 'POST'


class EmptyEntries(Enum):
    PLACEHOLDER = 'placeholder'
    SKIP = 'skip'


class BundleAssembler:

    def __init__(self, empty_entries=EmptyEntries.PLACEHOLDER, generate=new_reference):
        self.empty_entries = empty_entries
        self.generate = generate

    def assemble(self, subject):
        references = self._assign(subject)
        subject_reference = references.get(subject, Role.SELF)

        entries = [self._entry(ResourceKind.SUBJECT, subject, subject_reference)]
        for specimen in subject.specimens:
            specimen_reference = references.get(specimen, Role.SELF)
            entries.append(self._entry(
                ResourceKind.SPECIMEN, specimen, specimen_reference,
                subject=references.get(specimen, Role.SUBJECT)
            ))
            entries.append(self._entry(
                ResourceKind.REPORT, specimen, self.generate(),
                subject=subject_reference,
                specimen=specimen_reference
            ))
            for observation in specimen.observations:
                entries.append(self._entry(
                    ResourceKind.OBSERVATION, observation, references.get(observation, Role.SELF),
                    subject=references.get(observation, Role.SPECIMEN)
                ))

        entries = [entry for entry in entries if entry is not None]
        logger.info('Bundled patient %s into %d entries', subject.identifier.key, len(entries))
        return {
            'resourceType': BUNDLE_RESOURCE_TYPE,
            'type': BUNDLE_TYPE,
            'entry': entries,
        }

    def assemble_all(self, subjects):
        return [self.assemble(subject) for subject in subjects]

    def _assign(self, subject):
        # every token exists before anything is rendered
        references = ReferenceTable()
        subject_reference = self.generate()
        references.put(subject, Role.SELF, subject_reference)

        for specimen in subject.specimens:
            specimen_reference = self.generate()
            references.put(specimen, Role.SELF, specimen_reference)
            references.put(specimen, Role.SUBJECT, subject_reference)
            for observation in specimen.observations:
                references.put(observation, Role.SELF, self.generate())
                references.put(observation, Role.SPECIMEN, specimen_reference)

        return references

    def _entry(self, kind, node, reference, subject=None, specimen=None):
        try:
            resource = render(kind, node)
        except RenderError as e:
            logger.error('Entry %s left without a resource: %s', reference.value, e)
            resource = None

        if resource is None and self.empty_entries is EmptyEntries.SKIP:
            logger.warning('Skipping empty %s entry %s', kind.value, reference.value)
            return None

        entry = {'fullUrl': reference.value}
        if resource is not None:
            entry['resource'] = resource
        if subject is not None:
            link(entry, 'subject', subject)
        if specimen is not None:
            link(entry, 'specimen', specimen)
        entry['request'] = {'method': REQUEST_METHOD, 'url': kind.value}

        return entry
