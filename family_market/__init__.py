"""Family Market backend: MercadoPago payments, push notifications and catalog search."""
