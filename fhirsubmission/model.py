"""
Input tree: one subject, its specimens, and the typing observations of each
specimen. Nodes are frozen and compare by identity, so they can key the
reference side-table even when two of them carry the same values.
"""
from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class Identifier:
    system: str
    value: str

    @property
    def key(self):
        return f'{self.system}_{self.value}'


@dataclass(frozen=True, eq=False)
class Observation:
    identifier: Identifier
    genotype: str

    def __post_init__(self):
        if self.genotype is None:
            object.__setattr__(self, 'genotype', '')


@dataclass(frozen=True, eq=False)
class Specimen:
    identifier: Identifier
    observations: Tuple[Observation, ...] = field(default_factory=tuple)


@dataclass(frozen=True, eq=False)
class Subject:
    identifier: Identifier
    specimens: Tuple[Specimen, ...] = field(default_factory=tuple)


def identifier_from_dict(data):
    return Identifier(system=data['system'], value=data['value'])


def observation_from_dict(data):
    return Observation(
        identifier=identifier_from_dict(data['identifier']),
        genotype=data.get('genotype', '')
    )


def specimen_from_dict(data):
    return Specimen(
        identifier=identifier_from_dict(data['identifier']),
        observations=tuple(
            observation_from_dict(observation) for observation in data.get('observations', [])
        )
    )


def subject_from_dict(data):
    return Subject(
        identifier=identifier_from_dict(data['identifier']),
        specimens=tuple(
            specimen_from_dict(specimen) for specimen in data.get('specimens', [])
        )
    )


def subjects_from_dicts(items):
    return [subject_from_dict(item) for item in items]


def iter_nodes(subject):
    yield subject
    for specimen in subject.specimens:
        yield specimen
        yield from specimen.observations
