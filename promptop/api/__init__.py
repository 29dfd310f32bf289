"""HTTP routers for the Prompt Gateway."""
