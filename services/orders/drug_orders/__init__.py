"""
Drug order and inventory transaction engine.

Creates multi-item drug orders, runs the per-item approval workflow and keeps
drug stock consistent with item approvals.
"""
