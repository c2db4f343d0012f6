import argparse
import json
import logging
import sys
from pathlib import Path

from fhirsubmission.bundle import BundleAssembler
from fhirsubmission.config import load_settings
from fhirsubmission.errors import ConfigurationError
from fhirsubmission.submission import Submitter
from fhirsubmission.transport import FhirTransport

logger = logging.getLogger(__name__)


def write_document_to_file(document, filename):
    with open(filename, "w") as outfile:
        json.dump(document, outfile, indent=4)


def run_submit(settings, output_dir):
    if not settings.base_url:
        raise ConfigurationError('base_url is required to submit')

    transport = FhirTransport(timeout=settings.timeout)
    try:
        submitter = Submitter(transport, settings.base_url, settings.max_workers)
        graph = submitter.submit_all(settings.subjects)
    finally:
        transport.close()

    write_document_to_file(graph.as_dict(), output_dir / 'results.json')
    print(f'Recorded {len(graph)} specimen result(s) in {output_dir / "results.json"}')


def run_bundle(settings, output_dir):
    assembler = BundleAssembler(empty_entries=settings.empty_entries)
    for index, bundle in enumerate(assembler.assemble_all(settings.subjects)):
        write_document_to_file(bundle, output_dir / f'bundle_{index}.json')

    print(f'Wrote {len(settings.subjects)} bundle(s) to {output_dir}')


COMMANDS = {
    'submit': run_submit,
    'bundle': run_bundle,
}


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Submits Patient, Specimen, Observation and DiagnosticReport resources, '
                    'or writes them out as collection bundles'
    )
    parser.add_argument('command', choices=sorted(COMMANDS), help='submit to the server or bundle offline')
    parser.add_argument('config_file', help='Config file')
    parser.add_argument('-v', '--verbose', action='store_true', help='debug logging')

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    try:
        settings = load_settings(args.config_file)
        output_dir = Path(settings.output_directory_name)
        output_dir.mkdir(parents=True, exist_ok=True)
        COMMANDS[args.command](settings, output_dir)
    except ConfigurationError as e:
        logger.error('%s', e)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
