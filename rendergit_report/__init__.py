"""
Render a first-parent slice of a repository's history into a report
document, optionally reshaped by an editable history plan
(pick / drop / squash / bundle).
"""

__version__ = "0.2.0"
