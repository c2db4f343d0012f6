"""
One renderer per resource kind. Each turns a node of the input tree into a
FHIR R4B resource and returns it as a JSON-ready dict.

Cross-references come only from the ReferenceTable passed in; without one
the payload carries none.
"""
import json
import logging
from enum import Enum

from fhir.resources.R4B.codeableconcept import CodeableConcept
from fhir.resources.R4B.coding import Coding
from fhir.resources.R4B.diagnosticreport import DiagnosticReport
from fhir.resources.R4B.identifier import Identifier
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.reference import Reference as FHIRReference
from fhir.resources.R4B.specimen import Specimen

from fhirsubmission.errors import RenderError
from fhirsubmission.references import Role

logger = logging.getLogger(__name__)

LOINC_SYSTEM = "http://loinc.org"

LAB_RESULT_STATUS_FINAL = "final"
LAB_RESULT_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/observation-category"
LAB_RESULT_CATEGORY_CODE = "laboratory"
GENOTYPE_CODE = "84413-4"
GENOTYPE_DISPLAY = "Genotype display name"

DIAGNOSTIC_REPORT_STATUS_FINAL = "final"
DIAGNOSTIC_REPORT_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/v2-0074"
DIAGNOSTIC_REPORT_CATEGORY_CODE = "GE"
DIAGNOSTIC_REPORT_CATEGORY_DISPLAY = "Genetics"
HLA_CLASS_I_CODE = "13303-3"
HLA_CLASS_I_DISPLAY = "HLA-A+B+C (class I) [Type]"
PERFORMER_DISPLAY = "Typing Laboratory"


class ResourceKind(Enum):
    SUBJECT = "Patient"
    SPECIMEN = "Specimen"
    OBSERVATION = "Observation"
    REPORT = "DiagnosticReport"


def as_document(kind, resource):
    document = json.loads(resource.model_dump_json(by_alias=True, exclude_none=True))
    # resourceType leads, as in every FHIR JSON payload
    return {"resourceType": kind.value, **document}


def lookup(references, node, role):
    if references is None:
        return None
    return references.get(node, role)


def create_identifier(identifier):
    return Identifier(system=identifier.system, value=identifier.value)


def create_link(reference):
    return FHIRReference(reference=reference.value)


def create_codable_concept_with_single_coding(system, code, display):
    coding = Coding(system=system, code=code, display=display)
    return CodeableConcept(coding=[coding])


def render_subject(subject, references=None):
    patient = Patient(identifier=[create_identifier(subject.identifier)])
    return as_document(ResourceKind.SUBJECT, patient)


def render_specimen(specimen, references=None):
    fields = {"identifier": [create_identifier(specimen.identifier)]}

    subject = lookup(references, specimen, Role.SUBJECT)
    if subject is not None:
        fields["subject"] = create_link(subject)

    return as_document(ResourceKind.SPECIMEN, Specimen(**fields))


def render_observation(observation, references=None):
    if not observation.genotype:
        logger.warning("Observation %s has no genotype, nothing to render", observation.identifier.key)
        return None

    fields = {
        "identifier": [create_identifier(observation.identifier)],
        "status": LAB_RESULT_STATUS_FINAL,
        "category": [
            create_codable_concept_with_single_coding(
                LAB_RESULT_CATEGORY_SYSTEM,
                LAB_RESULT_CATEGORY_CODE,
                None
            )
        ],
        "code": create_codable_concept_with_single_coding(
            LOINC_SYSTEM,
            GENOTYPE_CODE,
            GENOTYPE_DISPLAY
        ),
        "valueString": observation.genotype,
    }

    specimen = lookup(references, observation, Role.SPECIMEN)
    if specimen is not None:
        fields["specimen"] = create_link(specimen)

    return as_document(ResourceKind.OBSERVATION, Observation(**fields))


def render_report(specimen, references=None):
    """
    Summary report of one specimen. Observations without a known result
    reference are left out of ``result``.
    """
    fields = {
        "status": DIAGNOSTIC_REPORT_STATUS_FINAL,
        "category": [
            create_codable_concept_with_single_coding(
                DIAGNOSTIC_REPORT_CATEGORY_SYSTEM,
                DIAGNOSTIC_REPORT_CATEGORY_CODE,
                DIAGNOSTIC_REPORT_CATEGORY_DISPLAY
            )
        ],
        "code": create_codable_concept_with_single_coding(
            LOINC_SYSTEM,
            HLA_CLASS_I_CODE,
            HLA_CLASS_I_DISPLAY
        ),
        "performer": [FHIRReference(display=PERFORMER_DISPLAY)],
    }

    subject = lookup(references, specimen, Role.SUBJECT)
    if subject is not None:
        fields["subject"] = create_link(subject)

    specimen_reference = lookup(references, specimen, Role.SELF)
    if specimen_reference is not None:
        fields["specimen"] = [create_link(specimen_reference)]

    results = []
    for observation in specimen.observations:
        result = lookup(references, observation, Role.RESULT)
        if result is not None:
            results.append(FHIRReference(reference=result.value, display=observation.genotype))
    if results:
        fields["result"] = results

    return as_document(ResourceKind.REPORT, DiagnosticReport(**fields))


RENDERERS = {
    ResourceKind.SUBJECT: render_subject,
    ResourceKind.SPECIMEN: render_specimen,
    ResourceKind.OBSERVATION: render_observation,
    ResourceKind.REPORT: render_report,
}


def render(kind, node, references=None):
    try:
        return RENDERERS[kind](node, references)
    except ValueError as e:
        # pydantic validation errors are ValueErrors
        raise RenderError(f"{kind.value} {node.identifier.key} is not a valid resource: {e}") from e
