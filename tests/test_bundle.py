"""
test_bundle.py
--------------
Bundle assembly: entry layout and count, client-generated links, placeholder
handling, and repeatability.
"""
import json

import pytest

from fhirsubmission.bundle import BundleAssembler, EmptyEntries
from fhirsubmission.identifiers import URN_UUID_PREFIX, new_reference
from fhirsubmission.model import Identifier, Observation, Specimen, Subject
from tests.fakes import counting_generator, make_subject


def kinds(bundle):
    return [entry["request"]["url"] for entry in bundle["entry"]]


# ── Identifier generator ──────────────────────────────────────────────────────

def test_new_reference_is_a_fresh_urn_uuid():
    first, second = new_reference(), new_reference()
    assert first.value.startswith(URN_UUID_PREFIX)
    assert len(first.value) == len(URN_UUID_PREFIX) + 36
    assert first != second
    assert first.url is None


# ── Layout ────────────────────────────────────────────────────────────────────

def test_bundle_envelope(subject):
    bundle = BundleAssembler().assemble(subject)
    assert bundle["resourceType"] == "Bundle"
    assert bundle["type"] == "collection"


@pytest.mark.parametrize("specimens, observations", [(0, 0), (1, 0), (1, 1), (2, 3), (3, 6)])
def test_entry_count(specimens, observations):
    subject = make_subject(specimens=specimens, observations=observations)
    bundle = BundleAssembler().assemble(subject)
    n, m = specimens, observations
    assert len(bundle["entry"]) == 1 + n * (1 + 1) + n * m


def test_entry_order(subject):
    bundle = BundleAssembler().assemble(subject)
    expected = ["Patient"]
    for specimen in subject.specimens:
        expected += ["Specimen", "DiagnosticReport"] + ["Observation"] * len(specimen.observations)
    assert kinds(bundle) == expected


def test_every_entry_is_a_replayable_post(subject):
    bundle = BundleAssembler().assemble(subject)
    for entry in bundle["entry"]:
        assert entry["request"]["method"] == "POST"
        assert entry["request"]["url"] == entry["resource"]["resourceType"]


def test_full_urls_are_unique(subject):
    bundle = BundleAssembler().assemble(subject)
    full_urls = [entry["fullUrl"] for entry in bundle["entry"]]
    assert len(set(full_urls)) == len(full_urls)
    assert all(url.startswith(URN_UUID_PREFIX) for url in full_urls)


# ── Links ─────────────────────────────────────────────────────────────────────

def test_links_point_at_the_exact_parent_tokens():
    subject = make_subject(specimens=2, observations=2)
    bundle = BundleAssembler(generate=counting_generator()).assemble(subject)
    entries = bundle["entry"]

    patient = entries[0]
    assert "subject" not in patient and "specimen" not in patient

    position = 1
    for specimen in subject.specimens:
        specimen_entry, report_entry = entries[position], entries[position + 1]
        assert specimen_entry["subject"] == {"reference": patient["fullUrl"]}
        assert report_entry["subject"] == {"reference": patient["fullUrl"]}
        assert report_entry["specimen"] == {"reference": specimen_entry["fullUrl"]}
        for offset in range(len(specimen.observations)):
            observation_entry = entries[position + 2 + offset]
            assert observation_entry["subject"] == {"reference": specimen_entry["fullUrl"]}
            assert "specimen" not in observation_entry
        position += 2 + len(specimen.observations)


def test_resources_carry_no_generated_tokens(subject):
    bundle = BundleAssembler().assemble(subject)
    for entry in bundle["entry"]:
        assert URN_UUID_PREFIX not in json.dumps(entry["resource"])


def test_each_subject_gets_its_own_tokens():
    subjects = [make_subject(value="D-1"), make_subject(value="D-2")]
    first, second = BundleAssembler().assemble_all(subjects)
    assert first["entry"][0]["fullUrl"] != second["entry"][0]["fullUrl"]
    assert first["entry"][0]["resource"]["identifier"][0]["value"] == "D-1"
    assert second["entry"][0]["resource"]["identifier"][0]["value"] == "D-2"


# ── Repeatability ─────────────────────────────────────────────────────────────

def test_assembling_twice_differs_only_in_tokens(subject):
    assembler = BundleAssembler()
    first, second = assembler.assemble(subject), assembler.assemble(subject)
    assert len(first["entry"]) == len(second["entry"])
    for a, b in zip(first["entry"], second["entry"]):
        assert json.dumps(a["resource"]) == json.dumps(b["resource"])
        assert a["request"] == b["request"]
        assert a.keys() == b.keys()
        assert a["fullUrl"] != b["fullUrl"]
        for key in ("subject", "specimen"):
            if key in a:
                assert a[key]["reference"] != b[key]["reference"]
                assert b[key]["reference"].startswith(URN_UUID_PREFIX)


def test_assembly_does_not_touch_the_input(subject):
    before = [(s.identifier, len(s.observations)) for s in subject.specimens]
    BundleAssembler().assemble(subject)
    assert [(s.identifier, len(s.observations)) for s in subject.specimens] == before


# ── Empty entries ─────────────────────────────────────────────────────────────

def subject_with_empty_observation():
    specimen = Specimen(
        Identifier("http://nmdp.org/sample", "S-1"),
        (
            Observation(Identifier("http://nmdp.org/typing", "1"), "HLA-A*01:01"),
            Observation(Identifier("http://nmdp.org/typing", "2"), ""),
        )
    )
    return Subject(Identifier("http://nmdp.org/donor", "D-1"), (specimen,))


def test_placeholder_keeps_position_and_links():
    bundle = BundleAssembler(empty_entries=EmptyEntries.PLACEHOLDER).assemble(subject_with_empty_observation())
    assert len(bundle["entry"]) == 1 + 2 + 2
    placeholder = bundle["entry"][-1]
    assert "resource" not in placeholder
    assert placeholder["fullUrl"].startswith(URN_UUID_PREFIX)
    assert placeholder["subject"] == {"reference": bundle["entry"][1]["fullUrl"]}
    assert placeholder["request"] == {"method": "POST", "url": "Observation"}


def test_skip_drops_empty_entries():
    bundle = BundleAssembler(empty_entries=EmptyEntries.SKIP).assemble(subject_with_empty_observation())
    assert len(bundle["entry"]) == 1 + 2 + 1
    assert all("resource" in entry for entry in bundle["entry"])


# ── Invalid nodes ─────────────────────────────────────────────────────────────

def subject_with_invalid_observation():
    specimen = Specimen(
        Identifier("http://nmdp.org/sample", "S-1"),
        (
            Observation(Identifier("http://nmdp.org/typing", "1"), "HLA-A*01:01"),
            Observation(Identifier("http://nmdp.org/typing", ""), "HLA-B*07:02"),
        )
    )
    return Subject(Identifier("http://nmdp.org/donor", "D-1"), (specimen,))


def test_invalid_node_becomes_a_placeholder():
    bundle = BundleAssembler().assemble(subject_with_invalid_observation())
    assert len(bundle["entry"]) == 1 + 2 + 2
    placeholder = bundle["entry"][-1]
    assert "resource" not in placeholder
    assert placeholder["subject"] == {"reference": bundle["entry"][1]["fullUrl"]}


def test_invalid_node_is_skipped():
    bundle = BundleAssembler(empty_entries=EmptyEntries.SKIP).assemble(subject_with_invalid_observation())
    assert kinds(bundle) == ["Patient", "Specimen", "DiagnosticReport", "Observation"]


def test_assemble_all_contains_an_invalid_subject():
    invalid, good = make_subject(value=""), make_subject(value="D-2")
    first, second = BundleAssembler().assemble_all([invalid, good])
    assert "resource" not in first["entry"][0]
    assert len(first["entry"]) == len(second["entry"])
    assert all("resource" in entry for entry in second["entry"])
