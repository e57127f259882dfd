"""Challenge ladder backend: match store, player store and rank reconciliation."""
