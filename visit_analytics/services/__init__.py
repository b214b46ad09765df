"""
Services module for business logic separation.

This module contains the estimator, both storage tiers, the recorder, the
reconciler and the statistics service, keeping them separate from API
endpoints and database models.
"""
