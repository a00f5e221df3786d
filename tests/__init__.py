"""Test suite for the ThesisFlow thesis lifecycle engine.

This package contains tests for:
- Application and conclusion transition graphs
- Status ledger and listener dispatch
- Conclusion requests, drafts and final thesis uploads
- Reconciliation of co-supervisors, SDGs, keywords and embargoes
- Deadline resolution
- Upload staging and the PDF/A check
- Payload validation and the HTTP surface
"""
