"""Key storage, token encryption, and refresh protocol."""
