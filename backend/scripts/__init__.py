"""
Operational scripts.

Available scripts:
    - run_expiration_sweep.py: one expiration sweep, e.g. from cron when the
      in-process scheduler is disabled

Usage:
    python -m scripts.run_expiration_sweep
"""
