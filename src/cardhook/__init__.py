"""
cardhook: signed webhooks for card transaction processing.

Verifies the HMAC signature on every inbound authorization and adjustment
request and signs every response so the card processor can verify it.
"""

__version__ = "1.0.0"
