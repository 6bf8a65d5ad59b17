"""Rt estimators and the deterministic case-reproduction reference."""
