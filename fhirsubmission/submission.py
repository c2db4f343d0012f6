"""
Submission of one subject tree to a FHIR server.

Order is fixed by the references each resource needs:

    Patient -> Specimen -> Observation(s) -> DiagnosticReport

The Patient reference returned by the server is linked onto every specimen,
each Specimen reference onto its observations. Observations of one specimen
are posted concurrently on a bounded pool; the report waits for all of them.
A failure stays with the resource that caused it, except that a Patient the
server did not accept leaves nothing to link its specimens to.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fhirsubmission.correlation import correlate
from fhirsubmission.errors import ResponseExtractionError, SubmissionError
from fhirsubmission.model import iter_nodes
from fhirsubmission.references import ReferenceTable, Role, extract_reference
from fhirsubmission.render import ResourceKind, render
from fhirsubmission.transport import endpoint

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 6
SUCCESS_STATUS_CODES = (200, 201)


class Outcome(Enum):
    COMPLETE = 'COMPLETE'
    ERROR = 'ERROR'


def outcome_for(status_code):
    return Outcome.COMPLETE if status_code in SUCCESS_STATUS_CODES else Outcome.ERROR


@dataclass(frozen=True)
class SummaryReport:
    status: Outcome
    result: Optional[str] = None

    def as_dict(self):
        return {'status': self.status.value, 'result': self.result}


class ResultGraph:
    """
    Summary report per specimen, keyed ``{system}_{value}``. Safe to record
    into from several threads.
    """

    def __init__(self):
        self._reports = {}
        self._lock = threading.Lock()

    def record(self, identifier, report: SummaryReport):
        with self._lock:
            self._reports[identifier.key] = report

    def get(self, key) -> Optional[SummaryReport]:
        with self._lock:
            return self._reports.get(key)

    def keys(self):
        with self._lock:
            return list(self._reports)

    def as_dict(self):
        with self._lock:
            return {key: report.as_dict() for key, report in self._reports.items()}

    def __contains__(self, key):
        with self._lock:
            return key in self._reports

    def __len__(self):
        with self._lock:
            return len(self._reports)


class Submitter:

    def __init__(self, send, base_url, max_workers=DEFAULT_MAX_WORKERS):
        self.send = send
        self.base_url = base_url
        self.max_workers = max_workers
        self.references = ReferenceTable()

    def submit(self, subject, graph=None) -> ResultGraph:
        graph = ResultGraph() if graph is None else graph
        # each run starts with no references for this tree
        self.references.forget(*iter_nodes(subject))

        try:
            subject_reference = self._deliver(ResourceKind.SUBJECT, subject)
        except SubmissionError as e:
            logger.error(
                'Patient %s was not accepted, skipping its %d specimen(s): %s',
                subject.identifier.key, len(subject.specimens), e
            )
            return graph

        logger.info('Patient %s submitted as %s', subject.identifier.key, subject_reference.value)
        for specimen in subject.specimens:
            self.references.put(specimen, Role.SUBJECT, subject_reference)

        for specimen in subject.specimens:
            graph.record(specimen.identifier, self._submit_specimen(specimen))

        return graph

    def submit_all(self, subjects, max_workers=None) -> ResultGraph:
        graph = ResultGraph()
        with ThreadPoolExecutor(max_workers=max_workers or self.max_workers,
                                thread_name_prefix='subject') as pool:
            futures = [pool.submit(self.submit, subject, graph) for subject in subjects]
            for future in futures:
                future.result()

        return graph

    def _deliver(self, kind, node, document=None):
        if document is None:
            document = render(kind, node, self.references)
        response = self.send(document, endpoint(self.base_url, kind))
        reference = extract_reference(response, self.base_url)
        self.references.put(node, Role.SELF, reference)
        return reference

    def _submit_specimen(self, specimen):
        try:
            specimen_reference = self._deliver(ResourceKind.SPECIMEN, specimen)
        except SubmissionError as e:
            logger.error('Specimen %s was not accepted: %s', specimen.identifier.key, e)
            return SummaryReport(Outcome.ERROR)

        for observation in specimen.observations:
            self.references.put(observation, Role.SPECIMEN, specimen_reference)

        results = self._submit_observations(specimen)
        self._backfill_results(specimen, results)
        return self._submit_report(specimen)

    def _submit_observations(self, specimen):
        """Post every observation of ``specimen`` and wait for all of them."""
        if not specimen.observations:
            return {}

        with ThreadPoolExecutor(max_workers=self.max_workers,
                                thread_name_prefix='observation') as pool:
            futures = [
                pool.submit(self._submit_observation, observation)
                for observation in specimen.observations
            ]
            outcomes = [future.result() for future in futures]

        # input order, so a repeated key resolves to the last observation carrying it
        results = {}
        for key, reference in outcomes:
            if reference is not None:
                results[key] = reference

        return results

    def _submit_observation(self, observation):
        key = correlate(observation.genotype)
        try:
            document = render(ResourceKind.OBSERVATION, observation, self.references)
            if document is None:
                return key, None
            reference = self._deliver(ResourceKind.OBSERVATION, observation, document)
        except SubmissionError as e:
            logger.error('Observation %s was not accepted: %s', observation.identifier.key, e)
            return key, None

        return key, reference

    def _backfill_results(self, specimen, results):
        for observation in specimen.observations:
            reference = results.get(correlate(observation.genotype))
            if reference is None:
                logger.warning(
                    'No submitted result matches observation %s of specimen %s',
                    observation.identifier.key, specimen.identifier.key
                )
                continue
            self.references.put(observation, Role.RESULT, reference)

    def _submit_report(self, specimen):
        try:
            document = render(ResourceKind.REPORT, specimen, self.references)
            response = self.send(document, endpoint(self.base_url, ResourceKind.REPORT))
        except SubmissionError as e:
            logger.error('DiagnosticReport for specimen %s was not delivered: %s', specimen.identifier.key, e)
            return SummaryReport(Outcome.ERROR)

        status = outcome_for(response.status_code)
        if status is Outcome.ERROR:
            logger.error(
                'DiagnosticReport for specimen %s rejected with status %s',
                specimen.identifier.key, response.status_code
            )
            return SummaryReport(status)

        try:
            result = extract_reference(response, self.base_url).url
        except ResponseExtractionError as e:
            logger.error('DiagnosticReport for specimen %s has no readable location: %s', specimen.identifier.key, e)
            result = None

        return SummaryReport(status, result)
