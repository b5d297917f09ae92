"""
Domain layer for the spill relay.

This layer contains:
- Data models (submission, rendered notifications, result type)
- The relay pipeline (verification, validation, delivery)
"""
