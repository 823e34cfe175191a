"""Task neutralization -- agent resolution of extracted action items.

TaskNeutralizationEngine drives one task through
pending -> neutralizing -> done | failed under a per-actor quota, with a
hard timeout, a single retry, rollback, and an audit entry per outcome.
"""
