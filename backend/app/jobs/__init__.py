"""
Snapcheck Backend — Background Jobs
=====================================

    build_job.py             BuildJob: redis-backed queue + build processing,
                             `snapcheck-build-worker` entry point
    queue_pending_builds.py  re-enqueue recent pending builds,
                             `snapcheck-queue-pending-builds` entry point
"""
