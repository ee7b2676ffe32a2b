"""Figure shop order fulfillment: geometry, pricing, reservations, API."""
