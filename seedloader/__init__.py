"""
Seed Loader

Loads declarative seed data into a Salesforce org as an ordered pipeline of
steps, one entity type per step.

Supports:
- Dependency ordering of steps
- Record filters with a small predicate language
- Layered mapping configs (base, environment, file, inline)
- Field shaping, transform ops and reference resolution by business key
- Metadata-driven pruning and batch validation
- REST, sObject collection and bulk commits with per-record reconciliation
- Dry runs with fabricated ids
"""

__version__ = "0.1.0"
