"""Domain layer for the email tracker.

Contains the tracking session model, the merge algorithm and the
enrichment boundary. This layer has no dependencies on infrastructure.
"""
