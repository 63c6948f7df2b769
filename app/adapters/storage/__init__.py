"""Submission storage adapters.

The rate gate, request handler and history routes depend on
``AbstractSubmissionStore`` only, so the in-memory backend used for
development and tests can be swapped for the SQL backend via configuration.
"""

from app.adapters.storage.base import AbstractSubmissionStore
from app.adapters.storage.factory import create_submission_store
from app.adapters.storage.in_memory import InMemorySubmissionStore
from app.adapters.storage.sql import SQLSubmissionStore

__all__ = [
    "AbstractSubmissionStore",
    "InMemorySubmissionStore",
    "SQLSubmissionStore",
    "create_submission_store",
]
