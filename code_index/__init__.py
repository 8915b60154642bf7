"""Code index synchronization: keeps a code-embedding index in step with tenant repositories."""
