"""Job portal backend: authentication and authorization core."""
