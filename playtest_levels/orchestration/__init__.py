"""
Orchestration: coordination across engines (recompute + notify, sweeps) and
the payment status lifecycle.
"""
