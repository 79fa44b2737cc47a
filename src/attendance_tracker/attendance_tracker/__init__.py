"""Attendance Tracker package.

Feature modules (attendance, anomalies, geofence, policies, ...) keep their
business rules in services that talk to Protocol repositories; MySQL
implementations and a thin Flask layer sit at the edges.
"""
