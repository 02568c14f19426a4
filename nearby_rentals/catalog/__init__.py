"""
Property catalog adapter.

Responsibilities:
- Fetch the listable properties from the catalog REST service.
- Validate raw listings into the canonical Property model, skipping bad rows.
- Hold an immutable in-memory snapshot, refreshed when it ages out.
"""
