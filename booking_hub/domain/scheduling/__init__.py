"""
Scheduling Domain

Aggregates bookings across every property and tour the principal can see:
parallel per-entity fetches, deduplicating merge, and the list, calendar
and summary views built on the merged collection.
"""
