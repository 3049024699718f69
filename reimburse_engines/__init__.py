"""
reimburse_engines -- Pure calculation layer.

Matching, receipt grouping, batch issue detection, export naming and report
rendering.  Engines receive frozen snapshots and return frozen results; they
never touch the database.  Object-store reads needed while rendering archives
are injected as a ``fetch`` callable.
"""
