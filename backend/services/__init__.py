"""Services shared by the API layer."""
