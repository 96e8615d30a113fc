"""Smart Attendance package.

Geofence-based attendance: location samples are buffered locally and flushed
to a remote document store in batches, geofence membership drives automatic
check-in/check-out, and a thin Flask controller layer exposes the services.
"""
