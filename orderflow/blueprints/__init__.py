"""HTTP surface: thin JSON handlers around the fulfillment services."""
