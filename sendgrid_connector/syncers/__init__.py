"""Resource syncers: one per SendGrid resource type."""
