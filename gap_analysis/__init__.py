"""Compliance gap analysis for emergency-management plans."""
