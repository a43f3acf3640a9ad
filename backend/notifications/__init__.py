"""Push notification building, recipient resolution and delivery."""
