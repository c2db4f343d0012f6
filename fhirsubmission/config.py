import json
from dataclasses import dataclass, field
from typing import List, Optional

from fhirsubmission.bundle import EmptyEntries
from fhirsubmission.errors import ConfigurationError
from fhirsubmission.model import Subject, subjects_from_dicts
from fhirsubmission.submission import DEFAULT_MAX_WORKERS


@dataclass
class Settings:
    base_url: Optional[str] = None
    output_directory_name: str = 'output'
    max_workers: int = DEFAULT_MAX_WORKERS
    timeout: float = 30.0
    empty_entries: EmptyEntries = EmptyEntries.PLACEHOLDER
    subjects: List[Subject] = field(default_factory=list)


def settings_from_dict(config):
    try:
        empty_entries = EmptyEntries(config.get('empty_entries', EmptyEntries.PLACEHOLDER.value))
    except ValueError:
        raise ConfigurationError(
            f"empty_entries must be one of {[e.value for e in EmptyEntries]}, "
            f"got {config.get('empty_entries')!r}"
        )

    max_workers = config.get('max_workers', DEFAULT_MAX_WORKERS)
    if not isinstance(max_workers, int) or max_workers < 1:
        raise ConfigurationError(f'max_workers must be a positive integer, got {max_workers!r}')

    try:
        subjects = subjects_from_dicts(config.get('subjects', []))
    except (KeyError, TypeError, AttributeError) as e:
        raise ConfigurationError(f'Malformed subject in config: {e!r}') from e

    return Settings(
        base_url=config.get('base_url'),
        output_directory_name=config.get('output_directory_name', 'output'),
        max_workers=max_workers,
        timeout=float(config.get('timeout', 30.0)),
        empty_entries=empty_entries,
        subjects=subjects
    )


def load_settings(path):
    try:
        with open(path, 'r', newline='') as config_file:
            config = json.loads(config_file.read())
    except OSError as e:
        raise ConfigurationError(f'Cannot read config file {path}: {e}') from e
    except ValueError as e:
        raise ConfigurationError(f'Config file {path} is not valid JSON: {e}') from e

    if not isinstance(config, dict):
        raise ConfigurationError(f'Config file {path} must hold a JSON object')

    return settings_from_dict(config)
