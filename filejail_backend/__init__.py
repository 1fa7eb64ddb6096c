"""Backend pieces for the filejail server.

Route handlers in server.py stay thin; the logic lives here:
- session store with idle expiry
- root confinement for every user-supplied path
- per-session directory navigation and file operations

Security note:
A session token is the only credential. Tokens are 128-bit random values;
responses show paths relative to the root and never the server's real paths.
"""
