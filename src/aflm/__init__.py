"""
Admission Form Logic Model (AFLM) Package

The rule, group, enrichment and validation engine behind the school
admission registration form.

ARCHITECTURAL GUARANTEE:
------------------------
This package contains ZERO knowledge of:
    - Widgets, layout or rendering
    - Login flows or token storage
    - Any particular UI framework

The form is a static FormDefinition (aflm.catalog) plus one record
snapshot. Every operation is a function of the two; the UI binds to
FormSession and renders what it reports.
"""

__version__ = "0.1.0"
