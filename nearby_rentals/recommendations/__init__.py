"""
Nearby rental recommendation engine.

Responsibilities:
- Accept a location and target price (or an anchor property).
- Reuse a recent cached batch when it is fresh and still near the query.
- Ask the remote recommender, resolving its ids against the catalog.
- Fall back to local distance/price ranking when the remote answer is thin.
- Return at most k distinct properties that have coordinates and a photo.
"""
