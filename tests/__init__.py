"""
Test Suite for the Controller Endpoint Lens
===========================================

Test Structure:
    - test_segmenter.py / test_attributes.py / test_routes.py: lexical stages
    - test_type_catalog.py / test_classifier.py: type resolution and binding
    - test_parser.py: end-to-end document parsing
    - test_sample_values.py / test_synthesizer.py / test_environment.py: request synthesis
    - test_document_cache.py: fingerprint-keyed caching
    - test_cli.py: command line entry point
"""

__version__ = "1.0.0"
