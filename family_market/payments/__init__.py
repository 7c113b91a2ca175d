"""MercadoPago payments: gateway client, checkout and state projection."""
