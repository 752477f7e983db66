"""Form definitions, submissions, and response recovery."""
