"""MercadoPago webhook intake.

Receives payment and subscription notifications, re-reads the notified
resource from the gateway and projects it onto the document store.
"""
