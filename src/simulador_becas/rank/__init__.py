"""Eligibility evaluation, prelation and discount arithmetic."""
