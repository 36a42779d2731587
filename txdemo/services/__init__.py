"""Services Layer — the transactional unit-of-work."""
