"""Submission and bundling of HLA typing records as FHIR resources."""

__version__ = "0.1.0"
