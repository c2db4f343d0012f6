import sys

from fhirsubmission.cli import main

sys.exit(main())
