"""Application package for the StudyHub study-tracking backend.

This package exposes the service, repository and model modules used by
the FastAPI application: the progress ledger, the leaderboard ranking
and the group quiz scoring engine. Individual modules contain the
concrete implementations and documentation.
"""
