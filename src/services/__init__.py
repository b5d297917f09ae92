"""
Service functions used by the spill relay.

This package contains the validation, human verification, notification
formatting and parameter store helpers.
"""

__all__ = ['formatting', 'parameters', 'recaptcha', 'validation']
